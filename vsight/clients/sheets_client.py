from __future__ import annotations

from typing import Any, Sequence
from urllib.parse import quote

from vsight.clients.google_api import GoogleApiClient
from vsight.errors import UpstreamError


DEFAULT_TABS = ("Vault", "Tracker", "Settings")


def spreadsheet_name_for(email: str, prefix: str = "VSight_") -> str:
    return f"{prefix}{(email or 'user').strip() or 'user'}"


class SheetsClient(GoogleApiClient):
    """Drive lookup plus Sheets values access for the per-user spreadsheet."""

    SERVICE = "Google Sheets"
    DRIVE_FILES = "https://www.googleapis.com/drive/v3/files"
    SHEETS_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
    SPREADSHEET_MIME = "application/vnd.google-apps.spreadsheet"

    @staticmethod
    def _escape_query_value(value: str) -> str:
        return value.replace("\\", "\\\\").replace("'", "\\'")

    def find_spreadsheet(self, name: str) -> str:
        escaped = self._escape_query_value(name)
        query = f"name='{escaped}' and mimeType='{self.SPREADSHEET_MIME}' and trashed=false"
        payload = self._get(
            self.DRIVE_FILES,
            params={"q": query, "spaces": "drive", "fields": "files(id,name)", "pageSize": 1},
        )
        files = payload.get("files", []) or []
        if files:
            return str(files[0].get("id") or "")
        return ""

    def create_spreadsheet(self, name: str, tabs: Sequence[str] = DEFAULT_TABS) -> str:
        body = {
            "properties": {"title": name},
            "sheets": [{"properties": {"title": tab}} for tab in tabs],
        }
        payload = self._post(self.SHEETS_BASE, body)
        spreadsheet_id = str(payload.get("spreadsheetId") or "").strip()
        if not spreadsheet_id:
            raise UpstreamError(502, "Failed to create spreadsheet.", service=self.SERVICE)
        return spreadsheet_id

    def find_or_create_spreadsheet(self, name: str) -> tuple[str, str]:
        spreadsheet_id = self.find_spreadsheet(name)
        if not spreadsheet_id:
            spreadsheet_id = self.create_spreadsheet(name)
        return spreadsheet_id, name

    def sheet_titles(self, spreadsheet_id: str) -> list[str]:
        payload = self._get(
            f"{self.SHEETS_BASE}/{spreadsheet_id}",
            params={"fields": "sheets.properties.title"},
        )
        return [
            str((sheet.get("properties") or {}).get("title") or "")
            for sheet in payload.get("sheets", []) or []
        ]

    def ensure_sheet(self, spreadsheet_id: str, title: str) -> None:
        if title in self.sheet_titles(spreadsheet_id):
            return
        self._post(
            f"{self.SHEETS_BASE}/{spreadsheet_id}:batchUpdate",
            {"requests": [{"addSheet": {"properties": {"title": title}}}]},
        )

    def get_values(self, spreadsheet_id: str, cell_range: str) -> list[list[Any]]:
        payload = self._get(f"{self.SHEETS_BASE}/{spreadsheet_id}/values/{quote(cell_range, safe='')}")
        values = payload.get("values", [])
        return values if isinstance(values, list) else []

    def append_values(
        self,
        spreadsheet_id: str,
        cell_range: str,
        values: Sequence[Sequence[Any]],
        value_input_option: str = "USER_ENTERED",
    ) -> dict[str, Any]:
        url = f"{self.SHEETS_BASE}/{spreadsheet_id}/values/{quote(cell_range, safe='')}:append"
        return self._post(
            url,
            {"values": [list(row) for row in values]},
            params={"valueInputOption": value_input_option, "insertDataOption": "INSERT_ROWS"},
        )
