from __future__ import annotations

import base64
import hashlib
from typing import Any

import pytest
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vsight.vault import SettingsVault, decrypt_value, encrypt_value


class FakeSheets:
    def __init__(self, rows: list[list[Any]] | None = None) -> None:
        self.rows = list(rows or [])
        self.appended: list[tuple[str, str, list]] = []
        self.ensured: list[tuple[str, str]] = []
        self.lookups = 0

    def find_or_create_spreadsheet(self, name: str) -> tuple[str, str]:
        self.lookups += 1
        return "sheet-1", name

    def ensure_sheet(self, spreadsheet_id: str, title: str) -> None:
        self.ensured.append((spreadsheet_id, title))

    def append_values(self, spreadsheet_id: str, cell_range: str, values: list) -> dict:
        self.appended.append((spreadsheet_id, cell_range, values))
        self.rows.extend(values)
        return {}

    def get_values(self, spreadsheet_id: str, cell_range: str) -> list[list[Any]]:
        assert cell_range == "Vault!A:C"
        return self.rows


def test_payload_layout_is_iv_tag_ciphertext() -> None:
    payload = encrypt_value("api-key-123", "secret")
    raw = base64.b64decode(payload)

    assert len(raw) == 12 + 16 + len("api-key-123")
    assert decrypt_value(payload, "secret") == "api-key-123"


def test_decrypts_payload_built_from_the_documented_layout() -> None:
    key = hashlib.sha256(b"vsight-dev-key").digest()
    iv = b"\x01" * 12
    sealed = AESGCM(key).encrypt(iv, b"hello", None)
    payload = base64.b64encode(iv + sealed[-16:] + sealed[:-16]).decode("ascii")

    assert decrypt_value(payload, "vsight-dev-key") == "hello"


def test_wrong_key_fails_authentication() -> None:
    payload = encrypt_value("value", "secret-a")
    with pytest.raises(InvalidTag):
        decrypt_value(payload, "secret-b")


def test_each_encryption_uses_a_fresh_iv() -> None:
    assert encrypt_value("same", "k") != encrypt_value("same", "k")


def test_save_appends_encrypted_row() -> None:
    sheets = FakeSheets()
    vault = SettingsVault(sheets, "VSight_ann@example.com", "secret")

    spreadsheet_id = vault.save("brave_key", "abc")

    assert spreadsheet_id == "sheet-1"
    assert sheets.ensured == [("sheet-1", "Vault")]
    _, cell_range, values = sheets.appended[0]
    key, encrypted, timestamp = values[0]
    assert cell_range == "Vault"
    assert key == "brave_key"
    assert encrypted != "abc"
    assert decrypt_value(encrypted, "secret") == "abc"
    assert timestamp.endswith("Z")


def test_load_is_latest_write_wins_and_keeps_plain_values() -> None:
    sheets = FakeSheets(
        [
            ["site", encrypt_value("https://old.example/", "secret"), "2024-01-01T00:00:00.000Z"],
            ["note", "written by hand", "2024-01-02T00:00:00.000Z"],
            ["site", encrypt_value("https://new.example/", "secret"), "2024-01-03T00:00:00.000Z"],
            ["", "orphan"],
            ["empty"],
        ]
    )
    vault = SettingsVault(sheets, "VSight_ann@example.com", "secret")

    assert vault.load() == {"site": "https://new.example/", "note": "written by hand"}
    assert vault.spreadsheet_id == "sheet-1"
    assert sheets.lookups == 1
