"""Operator and team productivity (OLE) aggregation.

``performance`` is standard time earned over actual time worked, in percent.
Availability and quality are taken as 100%, so ``ole`` is always exactly
``performance``.  Managers and supervisors do not earn individual credit:
they report the numbers of the team they belong to.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from lagamhub.models import Role, TaskStatus, to_number
from lagamhub.quantities import effective_produced, find_section, section_std_time
from lagamhub.slots import slot_duration

logger = logging.getLogger(__name__)

COUNTED_STATUSES = frozenset({TaskStatus.COMPLETED.value, TaskStatus.IN_PROGRESS.value})


def parse_task_date(value) -> date | None:
    """Return the calendar day of a task ``date`` field."""

    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class DateFilter:
    """Inclusive day interval applied to ``task.date``."""

    start: date
    end: date

    @classmethod
    def for_day(cls, day: date) -> "DateFilter":
        return cls(day, day)

    @classmethod
    def for_month(cls, day: date) -> "DateFilter":
        last = calendar.monthrange(day.year, day.month)[1]
        return cls(day.replace(day=1), day.replace(day=last))

    @classmethod
    def for_range(cls, start: date, end: date) -> "DateFilter":
        if end < start:
            start, end = end, start
        return cls(start, end)

    def contains(self, value) -> bool:
        day = parse_task_date(value)
        return day is not None and self.start <= day <= self.end


@dataclass(frozen=True)
class ScopeFilter:
    team_id: str | None = None
    operator_id: str | None = None


def _rate(std_time_earned: float, actual_time: float) -> float:
    return (std_time_earned / actual_time) * 100 if actual_time > 0 else 0


def _with_rates(entry: dict) -> dict:
    performance = _rate(entry["stdTimeEarned"], entry["actualTime"])
    entry["performance"] = performance
    entry["ole"] = performance
    return entry


def select_tasks(tasks: Iterable[dict], date_filter: DateFilter | None = None) -> list[dict]:
    """Tasks that count towards productivity within ``date_filter``."""

    selected = [task for task in tasks if task.get("status") in COUNTED_STATUSES]
    if date_filter is None:
        return selected
    return [task for task in selected if date_filter.contains(task.get("date"))]


def aggregate_performance(
    tasks: Iterable[dict],
    lagams: Iterable[dict],
    users: Iterable[dict],
    teams: Iterable[dict],
    date_filter: DateFilter | None = None,
    scope: ScopeFilter | None = None,
    *,
    include_tasks: bool = False,
    descending: bool = True,
) -> dict:
    """Compute per-operator and per-team productivity.

    Args:
        tasks, lagams, users, teams: Read-only snapshots of the collections.
        date_filter: Interval a task's ``date`` must fall in; ``None`` keeps
            every dated and undated task.
        scope: Optional team/operator restriction applied to the output
            lists.  Team figures are always computed from all members.
        include_tasks: Attach the contributing tasks to each operator.
        descending: Sort both lists by ``ole`` highest first.

    Returns:
        ``{"operators": [...], "teams": [...]}``.
    """

    lagams_by_id = {lagam.get("lagamId"): lagam for lagam in lagams}
    users = list(users)
    teams = list(teams)
    users_by_id = {user.get("id"): user for user in users}

    accumulators: dict[str, dict] = {}
    for user in users:
        accumulators[user.get("id")] = {
            "id": user.get("id"),
            "name": user.get("name"),
            "unitsProduced": 0,
            "stdTimeEarned": 0,
            "actualTime": 0,
            "avatarUrl": user.get("avatarUrl"),
            "tasks": [],
        }

    for task in select_tasks(tasks, date_filter):
        member_id = task.get("teamMemberId")
        if not member_id or member_id not in accumulators:
            continue
        lagam = lagams_by_id.get(task.get("lagamId"))
        if lagam is None or find_section(lagam, task.get("sectionName")) is None:
            logger.debug(
                "Skipping task %s: lagam %s / section %s not found",
                task.get("id"),
                task.get("lagamId"),
                task.get("sectionName"),
            )
            continue

        quantity = effective_produced(task)["total"]
        std_time_per_unit = section_std_time(lagam, task.get("sectionName"))
        actual_time = to_number(task.get("actualTime"), None)
        if actual_time is None:
            actual_time = slot_duration(task.get("timeSlot"))

        acc = accumulators[member_id]
        acc["unitsProduced"] += quantity
        acc["stdTimeEarned"] += quantity * std_time_per_unit
        acc["actualTime"] += actual_time
        acc["tasks"].append(task)

    team_results = []
    for team in teams:
        member_ids = list(team.get("memberIds") or [])
        totals = {
            "id": team.get("id"),
            "name": team.get("name"),
            "unitsProduced": 0,
            "stdTimeEarned": 0,
            "actualTime": 0,
            "memberIds": member_ids,
        }
        for member_id in member_ids:
            role = Role.of(users_by_id.get(member_id))
            if role is None or role.is_team_lead:
                continue
            acc = accumulators.get(member_id)
            if acc is None:
                continue
            totals["unitsProduced"] += acc["unitsProduced"]
            totals["stdTimeEarned"] += acc["stdTimeEarned"]
            totals["actualTime"] += acc["actualTime"]
        team_results.append(_with_rates(totals))

    operator_results = []
    for user_id, acc in accumulators.items():
        role = Role.of(users_by_id.get(user_id))
        entry = dict(acc)
        if role is not None and role.is_team_lead:
            team = next(
                (t for t in team_results if user_id in t["memberIds"]),
                None,
            )
            for key in ("unitsProduced", "stdTimeEarned", "actualTime", "performance", "ole"):
                entry[key] = team[key] if team else 0
            entry["tasks"] = []
            entry["isManager"] = True
        else:
            _with_rates(entry)
            entry["isManager"] = False
        if not include_tasks:
            entry.pop("tasks")
        operator_results.append(entry)

    if scope is not None:
        if scope.team_id:
            team_results = [t for t in team_results if str(t["id"]) == str(scope.team_id)]
        if scope.operator_id:
            operator_results = [
                o for o in operator_results if str(o["id"]) == str(scope.operator_id)
            ]

    operator_results.sort(key=lambda entry: entry["ole"], reverse=descending)
    team_results.sort(key=lambda entry: entry["ole"], reverse=descending)
    return {"operators": operator_results, "teams": team_results}
