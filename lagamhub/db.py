from typing import Any, Tuple

from flask import current_app

from lagamhub.models import id_timestamp
from lagamhub.store import StoreError


def _ensure_store() -> Tuple[Any, str | None]:
    """Return the configured record store or an explanatory error."""

    store = current_app.config.get("RECORD_STORE")
    if store is None or not hasattr(store, "load"):
        return None, "Record store is not configured."
    return store, None


def _fetch(identifier: str) -> tuple[list[dict] | None, str | None]:
    store, error = _ensure_store()
    if error:
        return None, error
    try:
        return store.load(identifier), None
    except StoreError as exc:
        current_app.logger.error("Failed to read %s: %s", identifier, exc)
        return None, f"Failed to read {identifier}: {exc}"


def _save(identifier: str, records: list[dict]) -> tuple[list[dict] | None, str | None]:
    store, error = _ensure_store()
    if error:
        return None, error
    try:
        store.save(identifier, records)
    except StoreError as exc:
        current_app.logger.error("Failed to write %s: %s", identifier, exc)
        return None, f"Failed to write {identifier}: {exc}"
    return records, None


def fetch_users(include_sensitive: bool = False) -> tuple[list[dict] | None, str | None]:
    """Return users sorted by name.

    Args:
        include_sensitive: When ``True`` the records keep their ``password``
            hash.  Callers must never serialise those records.
    """

    users, error = _fetch("users")
    if error:
        return None, error
    users = sorted(users, key=lambda user: str(user.get("name") or "").casefold())
    if not include_sensitive:
        users = [
            {key: value for key, value in user.items() if key != "password"}
            for user in users
        ]
    return users, None


def fetch_user_by_email(email: str) -> tuple[dict | None, str | None]:
    """Return the stored record (with hash) whose email matches ``email``."""

    users, error = fetch_users(include_sensitive=True)
    if error:
        return None, error
    normalized = (email or "").strip().casefold()
    for user in users or []:
        if str(user.get("email") or "").strip().casefold() == normalized:
            return user, None
    return None, None


def save_users(users: list[dict]):
    return _save("users", users)


def fetch_teams() -> tuple[list[dict] | None, str | None]:
    teams, error = _fetch("teams")
    if error:
        return None, error
    return sorted(teams, key=lambda team: str(team.get("name") or "").casefold()), None


def save_teams(teams: list[dict]):
    return _save("teams", teams)


def fetch_catalog() -> tuple[list[dict] | None, str | None]:
    sections, error = _fetch("catalog")
    if error:
        return None, error
    return sorted(sections, key=lambda section: str(section.get("seccion") or "")), None


def save_catalog(sections: list[dict]):
    return _save("catalog", sections)


def fetch_lagams() -> tuple[list[dict] | None, str | None]:
    """Return lagams newest first, ordered by the timestamp in their id."""

    lagams, error = _fetch("lagams")
    if error:
        return None, error
    return sorted(lagams, key=lambda lagam: id_timestamp(lagam.get("lagamId")), reverse=True), None


def save_lagams(lagams: list[dict]):
    return _save("lagams", lagams)


def fetch_tasks() -> tuple[list[dict] | None, str | None]:
    return _fetch("production_tasks")


def save_tasks(tasks: list[dict]):
    return _save("production_tasks", tasks)
