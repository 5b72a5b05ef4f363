"""Entity vocabulary and record normalisation.

Records are kept as plain dictionaries in their persisted camelCase shape.
The helpers below fill in defaults and recompute the derived totals so that
``totalQuantity`` and the task quantity fields always match their size lists.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Iterable


class Role(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    SUPERVISOR = "Supervisor"
    OPERATOR = "Operator"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Return the role matching ``value`` ignoring case.

        Raises:
            ValueError: if ``value`` is not one of the known roles.
        """

        if isinstance(value, Role):
            return value
        text = str(value or "").strip().casefold()
        for role in cls:
            if role.value.casefold() == text:
                return role
        raise ValueError(f"Unknown role: {value!r}")

    @classmethod
    def of(cls, user: dict | None) -> "Role | None":
        """Return the role of ``user`` or ``None`` when it is missing/invalid."""

        if not user:
            return None
        try:
            return cls.parse(user.get("role"))
        except ValueError:
            return None

    @property
    def is_team_lead(self) -> bool:
        return self in (Role.MANAGER, Role.SUPERVISOR)


LEAD_ROLES = frozenset({Role.ADMIN, Role.MANAGER, Role.SUPERVISOR})
USER_ADMIN_ROLES = frozenset({Role.ADMIN, Role.MANAGER})


class TaskStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class LagamStatus(str, Enum):
    DRAFT = "Draft"
    ACTIVE = "Active"
    COMPLETED = "Completed"


TIME_SLOTS = (
    "7:30 to 9:30",
    "9:30 to 11:30",
    "11:30 to 1:30",
    "2:00 to 4:00",
    "4:00 to 5:00",
    "Overtime 1",
    "Overtime 2",
)

# Slots of a regular shift, used for the daily attainment summary.
REGULAR_TIME_SLOTS = TIME_SLOTS[:5]


def to_number(value: Any, default: float | None = 0) -> float | None:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return int(number) if number.is_integer() else number


def normalize_sizes(sizes: Iterable[dict] | None) -> list[dict]:
    """Return ``sizes`` as a clean list of ``{"size", "quantity"}`` entries."""

    cleaned: list[dict] = []
    for entry in sizes or []:
        if not isinstance(entry, dict):
            continue
        cleaned.append(
            {
                "size": str(entry.get("size") or ""),
                "quantity": to_number(entry.get("quantity")),
            }
        )
    return cleaned


def sum_sizes(sizes: Iterable[dict] | None) -> float:
    return sum(to_number(entry.get("quantity")) for entry in sizes or [] if isinstance(entry, dict))


def size_map(sizes: Iterable[dict] | None) -> dict[str, float]:
    """Collapse a size list into ``{size: quantity}`` summing duplicates."""

    totals: dict[str, float] = {}
    for entry in normalize_sizes(sizes):
        totals[entry["size"]] = totals.get(entry["size"], 0) + entry["quantity"]
    return totals


def normalize_lagam(record: dict) -> dict:
    """Return a copy of ``record`` with defaults and a recomputed total."""

    lagam = dict(record)
    product = dict(lagam.get("productInfo") or {})
    product["sizes"] = normalize_sizes(product.get("sizes"))
    product["totalQuantity"] = sum_sizes(product["sizes"])
    product.setdefault("productName", "")
    product.setdefault("productCode", "")
    lagam["productInfo"] = product

    team_info = dict(lagam.get("teamInfo") or {})
    team_info.setdefault("assignedTeamId", "")
    team_info.setdefault("assignedTeamName", "")
    team_info.setdefault("teamMemberCount", 0)
    lagam["teamInfo"] = team_info

    blueprint = []
    for section in lagam.get("productionBlueprint") or []:
        section = dict(section)
        section["assignedOperators"] = list(section.get("assignedOperators") or [])
        section["plannedOperations"] = list(section.get("plannedOperations") or [])
        blueprint.append(section)
    lagam["productionBlueprint"] = blueprint
    lagam.setdefault("status", LagamStatus.DRAFT.value)
    return lagam


def normalize_task(record: dict) -> dict:
    """Return a copy of ``record`` with recomputed quantity totals."""

    task = dict(record)
    task["sizeQuantities"] = normalize_sizes(task.get("sizeQuantities"))
    task["quantity"] = sum_sizes(task["sizeQuantities"])
    if task.get("sizeQuantitiesProduced") is not None:
        task["sizeQuantitiesProduced"] = normalize_sizes(task.get("sizeQuantitiesProduced"))
        task["quantityProduced"] = sum_sizes(task["sizeQuantitiesProduced"])
    task.setdefault("status", TaskStatus.PENDING.value)
    task.setdefault("teamMemberId", None)
    task.setdefault("date", None)
    task.setdefault("timeSlot", None)
    task["actualTime"] = to_number(task.get("actualTime"), None)
    task["estimatedTime"] = to_number(task.get("estimatedTime"))
    task.setdefault("operationStatus", [])
    task.setdefault("downtime", 0)
    task.setdefault("performance", 0)
    return task


def public_user(user: dict) -> dict:
    """Return ``user`` without its password hash."""

    return {key: value for key, value in user.items() if key != "password"}


def timestamp_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


def next_numeric_id(records: Iterable[dict]) -> str:
    """Return the next integer id for collections that use counters."""

    highest = 0
    seen = False
    for record in records:
        try:
            value = int(str(record.get("id")))
        except (TypeError, ValueError):
            continue
        highest = value if not seen else max(highest, value)
        seen = True
    return str(highest + 1) if seen else "1"


def id_timestamp(record_id: str | None) -> int:
    """Return the epoch-ms embedded in ``PREFIX-<epoch-ms>`` ids (0 if absent)."""

    parts = str(record_id or "").split("-")
    if len(parts) < 2:
        return 0
    try:
        return int(parts[1])
    except ValueError:
        return 0
