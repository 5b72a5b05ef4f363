from __future__ import annotations

from datetime import date
from typing import Iterable

from lagamhub.models import REGULAR_TIME_SLOTS
from lagamhub.quantities import effective_produced, section_std_time

SLOT_MINUTES = {
    "7:30 to 9:30": 120,
    "9:30 to 11:30": 120,
    "11:30 to 1:30": 120,
    "2:00 to 4:00": 120,
    "4:00 to 5:00": 60,
    "Overtime 1": 60,
    "Overtime 2": 60,
}


def slot_duration(time_slot: str | None) -> int:
    """Minutes covered by ``time_slot``; unknown or missing slots are 0."""

    if not time_slot:
        return 0
    return SLOT_MINUTES.get(time_slot, 0)


def _find_lagam(lagams: Iterable[dict], lagam_id: str | None) -> dict | None:
    for lagam in lagams:
        if lagam.get("lagamId") == lagam_id:
            return lagam
    return None


def task_objective(task: dict, lagams: Iterable[dict]) -> int:
    """Units an operator is expected to finish in the task's time slot."""

    lagam = _find_lagam(lagams, task.get("lagamId"))
    if lagam is None:
        return 0
    std_time = section_std_time(lagam, task.get("sectionName"))
    minutes = slot_duration(task.get("timeSlot"))
    if std_time <= 0 or minutes <= 0:
        return 0
    return int(minutes // std_time)


def attainment(objective: float, actual: float) -> float:
    """Actual output as a percentage of the objective.

    Output against an undefined (zero) objective counts as 100%.
    """

    if objective > 0:
        return actual / objective * 100
    return 100.0 if actual > 0 else 0.0


def task_attainment(task: dict, lagams: Iterable[dict]) -> float:
    objective = task_objective(task, lagams)
    return attainment(objective, effective_produced(task)["total"])


def _task_day(task: dict) -> str:
    return str(task.get("date") or "")[:10]


def operator_daily_summary(
    operator_id: str,
    day: date,
    tasks: Iterable[dict],
    lagams: Iterable[dict],
) -> dict:
    """Per-slot objective/actual/attainment of one operator for one day.

    ``dailyAttainment`` averages the regular shift slots that hold a task.
    """

    lagams = list(lagams)
    day_key = day.isoformat()
    operator_tasks = [
        task
        for task in tasks
        if task.get("teamMemberId") == operator_id and _task_day(task) == day_key
    ]

    slots = []
    regular_attainments = []
    for slot in SLOT_MINUTES:
        task = next((t for t in operator_tasks if t.get("timeSlot") == slot), None)
        if task is None:
            slots.append({"timeSlot": slot, "task": None})
            continue
        objective = task_objective(task, lagams)
        actual = effective_produced(task)["total"]
        value = attainment(objective, actual)
        if slot in REGULAR_TIME_SLOTS:
            regular_attainments.append(value)
        slots.append(
            {
                "timeSlot": slot,
                "task": task,
                "objective": objective,
                "actual": actual,
                "attainment": value,
            }
        )

    return {
        "operatorId": operator_id,
        "date": day_key,
        "slots": slots,
        "totalObjective": sum(task_objective(t, lagams) for t in operator_tasks),
        "totalActual": sum(effective_produced(t)["total"] for t in operator_tasks),
        "dailyAttainment": (
            sum(regular_attainments) / len(regular_attainments)
            if regular_attainments
            else 0
        ),
    }


def team_average_attainment(team: dict, summaries: dict[str, dict]) -> float:
    """Mean daily attainment of the team members that produced something."""

    values = [
        summaries[member_id]["dailyAttainment"]
        for member_id in team.get("memberIds") or []
        if member_id in summaries and summaries[member_id]["dailyAttainment"] > 0
    ]
    return sum(values) / len(values) if values else 0
