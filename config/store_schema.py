"""Centralised record store collection configuration.

Every collection the application persists (users, teams, the operation
catalog, lagams and production tasks) is declared here together with the
JSON file that backs it and the Supabase table used when the Supabase store
is selected.  Deployments can rename files or tables through the
``STORE_SCHEMA_JSON`` environment variable without touching application
logic.  Identifiers without an override fall back to the defaults below.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class StoreCollection:
    """Configuration for one persisted collection."""

    name: str
    filename: str
    key: str = "id"


_DEFAULT_STORE_SCHEMA: Dict[str, StoreCollection] = {
    "users": StoreCollection(name="users", filename="users.json"),
    "teams": StoreCollection(name="teams", filename="teams.json"),
    "catalog": StoreCollection(
        name="catalog_items",
        filename="catalog-items.json",
        key="seccion",
    ),
    "lagams": StoreCollection(
        name="lagams",
        filename="lagams.json",
        key="lagamId",
    ),
    "production_tasks": StoreCollection(
        name="production_tasks",
        filename="production-tasks.json",
    ),
}


def _coerce_entry(identifier: str, entry: Any) -> StoreCollection | None:
    """Return a :class:`StoreCollection` built from an override entry."""

    if not isinstance(entry, Mapping):
        return None

    base = _DEFAULT_STORE_SCHEMA.get(identifier)
    name = entry.get("name") or (base.name if base else None)
    filename = entry.get("filename") or (base.filename if base else None)
    key = entry.get("key") or (base.key if base else "id")
    if not isinstance(name, str) or not isinstance(filename, str):
        return None
    if not isinstance(key, str) or not key:
        return None
    return StoreCollection(name=name, filename=filename, key=key)


def _load_schema_from_env() -> Dict[str, StoreCollection]:
    """Build the store schema from environment overrides."""

    schema = dict(_DEFAULT_STORE_SCHEMA)

    raw_schema = os.getenv("STORE_SCHEMA_JSON")
    if not raw_schema:
        return schema

    try:
        parsed = json.loads(raw_schema)
    except json.JSONDecodeError:
        return schema

    if not isinstance(parsed, Mapping):
        return schema

    for identifier, entry in parsed.items():
        if not isinstance(identifier, str):
            continue
        collection = _coerce_entry(identifier, entry)
        if collection is not None:
            schema[identifier] = collection

    return schema


STORE_SCHEMA: Dict[str, StoreCollection] = _load_schema_from_env()


def collection(identifier: str) -> StoreCollection:
    """Return the configured collection for ``identifier``.

    Unknown identifiers map onto a collection of the same name so callers can
    persist ad-hoc collections without registering them first.
    """

    configured = STORE_SCHEMA.get(identifier)
    if configured:
        return configured
    return StoreCollection(name=identifier, filename=f"{identifier}.json")


def table_name(identifier: str) -> str:
    """Return the configured Supabase table name for ``identifier``."""

    return collection(identifier).name


def file_name(identifier: str) -> str:
    """Return the JSON file name backing ``identifier``."""

    return collection(identifier).filename


def key_column(identifier: str) -> str:
    """Return the field that uniquely identifies records of ``identifier``."""

    return collection(identifier).key
