from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from datetime import datetime, timezone

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vsight.clients.sheets_client import SheetsClient
from vsight.models import VaultEntry


logger = logging.getLogger(__name__)

VAULT_SHEET = "Vault"
VAULT_RANGE = "Vault!A:C"
IV_BYTES = 12
TAG_BYTES = 16


def _derive_key(secret: str) -> bytes:
    return hashlib.sha256(str(secret).encode("utf-8")).digest()


def encrypt_value(plaintext: str, secret: str) -> str:
    """AES-256-GCM; stored as base64(iv | tag | ciphertext)."""
    iv = os.urandom(IV_BYTES)
    sealed = AESGCM(_derive_key(secret)).encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext.
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return base64.b64encode(iv + tag + ciphertext).decode("ascii")


def decrypt_value(payload: str, secret: str) -> str:
    raw = base64.b64decode(payload.encode("ascii"), validate=True)
    if len(raw) < IV_BYTES + TAG_BYTES:
        raise ValueError("Encrypted payload is too short.")
    iv = raw[:IV_BYTES]
    tag = raw[IV_BYTES : IV_BYTES + TAG_BYTES]
    ciphertext = raw[IV_BYTES + TAG_BYTES :]
    plaintext = AESGCM(_derive_key(secret)).decrypt(iv, ciphertext + tag, None)
    return plaintext.decode("utf-8")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SettingsVault:
    """Encrypted key/value rows appended to the ``Vault`` tab of the user's spreadsheet."""

    def __init__(self, sheets: SheetsClient, spreadsheet_name: str, secret: str) -> None:
        self.sheets = sheets
        self.spreadsheet_name = spreadsheet_name
        self.secret = secret
        self._spreadsheet_id = ""

    @property
    def spreadsheet_id(self) -> str:
        if not self._spreadsheet_id:
            self._spreadsheet_id, _ = self.sheets.find_or_create_spreadsheet(self.spreadsheet_name)
        return self._spreadsheet_id

    def save(self, key: str, value: str) -> str:
        spreadsheet_id = self.spreadsheet_id
        self.sheets.ensure_sheet(spreadsheet_id, VAULT_SHEET)
        row = [key, encrypt_value(value, self.secret), _utc_timestamp()]
        self.sheets.append_values(spreadsheet_id, VAULT_SHEET, [row])
        logger.info("Stored vault key %s in spreadsheet %s", key, spreadsheet_id)
        return spreadsheet_id

    def entries(self) -> list[VaultEntry]:
        rows = self.sheets.get_values(self.spreadsheet_id, VAULT_RANGE)
        out: list[VaultEntry] = []
        for row in rows:
            if len(row) < 2 or not row[0] or not row[1]:
                continue
            out.append(
                VaultEntry(
                    key=str(row[0]),
                    value=self._reveal(str(row[1])),
                    timestamp=str(row[2]) if len(row) > 2 else "",
                )
            )
        return out

    def load(self) -> dict[str, str]:
        # Append-only sheet: the last row for a key is the current value.
        return {entry.key: entry.value for entry in self.entries()}

    def _reveal(self, stored: str) -> str:
        try:
            return decrypt_value(stored, self.secret)
        except (binascii.Error, ValueError, InvalidTag, UnicodeError):
            # Rows written by hand or before encryption are kept as plain text.
            return stored
