"""Whole-collection record stores.

Each collection is read and written as a complete list of records.  There is
no locking: two requests that rewrite the same collection race and the last
write wins.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from config.store_schema import file_name, key_column, table_name


class StoreError(RuntimeError):
    """Raised when a collection cannot be read or written."""


class JsonRecordStore:
    """Collections stored as JSON array files inside ``data_dir``."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, identifier: str) -> Path:
        return self.data_dir / file_name(identifier)

    def load(self, identifier: str) -> list[dict]:
        path = self.path_for(identifier)
        try:
            with path.open(encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Unable to read {path.name}: {exc}") from exc

        if not isinstance(payload, list):
            raise StoreError(f"{path.name} does not contain a JSON array")
        return payload

    def save(self, identifier: str, records: list[dict]) -> None:
        path = self.path_for(identifier)
        try:
            with path.open("w", encoding="utf-8") as handle:
                json.dump(records, handle, indent=2, ensure_ascii=False)
        except (OSError, TypeError, ValueError) as exc:
            raise StoreError(f"Unable to write {path.name}: {exc}") from exc


class SupabaseRecordStore:
    """Collections stored as Supabase tables, one row per record.

    Saving replaces the table contents: every existing row is deleted and the
    new list inserted.
    """

    def __init__(self, client: Any) -> None:
        if client is None or not hasattr(client, "table"):
            raise StoreError(
                "Supabase client is not configured. Set SUPABASE_URL and "
                "SUPABASE_SERVICE_KEY to use the Supabase record store."
            )
        self.client = client

    def load(self, identifier: str) -> list[dict]:
        try:
            response = self.client.table(table_name(identifier)).select("*").execute()
        except Exception as exc:  # pragma: no cover - network errors
            raise StoreError(f"Failed to fetch {identifier}: {exc}") from exc
        return list(response.data or [])

    def save(self, identifier: str, records: list[dict]) -> None:
        table = table_name(identifier)
        key = key_column(identifier)
        try:
            # PostgREST refuses unfiltered deletes; this filter matches every row.
            self.client.table(table).delete().neq(key, "").execute()
            if records:
                self.client.table(table).insert(list(records)).execute()
        except Exception as exc:  # pragma: no cover - network errors
            raise StoreError(f"Failed to write {identifier}: {exc}") from exc
