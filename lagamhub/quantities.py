from __future__ import annotations

from typing import Iterable

from lagamhub.models import (
    LagamStatus,
    TaskStatus,
    normalize_sizes,
    size_map,
    sum_sizes,
    to_number,
)


class AllocationError(ValueError):
    """Raised when a task would schedule more units than a size has left."""

    def __init__(self, size: str, max_available: float, message: str | None = None):
        self.size = size
        self.max_available = max_available
        super().__init__(
            message
            or f"For size {size or '(no size)'}, you can only schedule up to "
            f"{max_available} more units."
        )


def effective_produced(task: dict) -> dict:
    """Return the quantity a task counts as produced.

    A task marked ``Completed`` is credited with its full planned allocation
    (``sizeQuantities``/``quantity``) whatever was recorded as produced.  Any
    other status uses the recorded ``sizeQuantitiesProduced`` and
    ``quantityProduced`` fields, which default to nothing.

    Returns:
        Dict with ``total`` (number) and ``bySize`` (``{size: quantity}``).
    """

    if task.get("status") == TaskStatus.COMPLETED.value:
        sizes = task.get("sizeQuantities") or []
        total = task.get("quantity")
    else:
        sizes = task.get("sizeQuantitiesProduced") or []
        total = task.get("quantityProduced")

    if not isinstance(total, (int, float)) or isinstance(total, bool):
        total = sum_sizes(sizes)
    return {"total": total, "bySize": size_map(sizes)}


def find_section(lagam: dict | None, section_name: str | None) -> dict | None:
    for section in (lagam or {}).get("productionBlueprint") or []:
        if section.get("sectionName") == section_name:
            return section
    return None


def section_std_time(lagam: dict | None, section_name: str | None) -> float:
    """Standard minutes per unit for ``section_name`` (0 when unresolved)."""

    section = find_section(lagam, section_name)
    if not section:
        return 0
    return sum(to_number(op.get("tiempo")) for op in section.get("plannedOperations") or [])


def _section_tasks(lagam: dict, section_name: str, tasks: Iterable[dict]) -> list[dict]:
    lagam_id = lagam.get("lagamId")
    return [
        task
        for task in tasks
        if task.get("lagamId") == lagam_id and task.get("sectionName") == section_name
    ]


def reconcile_section(lagam: dict, section_name: str, tasks: Iterable[dict]) -> dict:
    """Compare what a section has produced against the lagam plan.

    Every section is expected to pass the whole order through, so completion
    compares the section output with the lagam's overall ``totalQuantity``.
    Sizes that are not part of the lagam's size list are ignored.
    """

    product = lagam.get("productInfo") or {}
    relevant = _section_tasks(lagam, section_name, tasks)
    contributions = [effective_produced(task)["bySize"] for task in relevant]

    produced_by_size = []
    for size_info in product.get("sizes") or []:
        size = size_info.get("size")
        produced_by_size.append(
            {
                "size": size,
                "quantity": sum(bucket.get(size, 0) for bucket in contributions),
            }
        )

    produced = sum(entry["quantity"] for entry in produced_by_size)
    planned = product.get("totalQuantity") or 0
    return {
        "sectionName": section_name,
        "produced": produced,
        "planned": planned,
        "isCompleted": produced >= planned,
        "producedBySize": produced_by_size,
    }


def reconcile_lagam(lagam: dict, tasks: Iterable[dict]) -> list[dict]:
    tasks = list(tasks)
    return [
        reconcile_section(lagam, section.get("sectionName"), tasks)
        for section in lagam.get("productionBlueprint") or []
    ]


def scheduled_quantity(
    lagam: dict,
    section_name: str,
    tasks: Iterable[dict],
    exclude_task_id: str | None = None,
) -> dict:
    """Planned allocation already scheduled for a section, by size.

    Counts the planned ``sizeQuantities`` of every task regardless of status.
    """

    relevant = [
        task
        for task in _section_tasks(lagam, section_name, tasks)
        if exclude_task_id is None or str(task.get("id")) != str(exclude_task_id)
    ]
    # Negative allocations never free up headroom.
    buckets = [
        {size: max(quantity, 0) for size, quantity in size_map(task.get("sizeQuantities")).items()}
        for task in relevant
    ]

    by_size = []
    for size_info in (lagam.get("productInfo") or {}).get("sizes") or []:
        size = size_info.get("size")
        by_size.append({"size": size, "quantity": sum(b.get(size, 0) for b in buckets)})
    return {"total": sum(entry["quantity"] for entry in by_size), "bySize": by_size}


def available_quantity(
    lagam: dict,
    section_name: str,
    tasks: Iterable[dict],
    exclude_task_id: str | None = None,
) -> list[dict]:
    """Return ``[{"size", "max"}]`` headroom for each lagam size."""

    scheduled = scheduled_quantity(lagam, section_name, tasks, exclude_task_id)
    scheduled_by_size = {entry["size"]: entry["quantity"] for entry in scheduled["bySize"]}
    return [
        {
            "size": size_info.get("size"),
            "max": (size_info.get("quantity") or 0)
            - scheduled_by_size.get(size_info.get("size"), 0),
        }
        for size_info in (lagam.get("productInfo") or {}).get("sizes") or []
    ]


def validate_allocation(
    lagam: dict,
    section_name: str,
    size_quantities: Iterable[dict] | None,
    tasks: Iterable[dict],
    exclude_task_id: str | None = None,
) -> None:
    """Reject an allocation that exceeds the remaining headroom of any size.

    Raises:
        AllocationError: naming the first offending size and its headroom, or the
            first size given a negative quantity.
    """

    for entry in normalize_sizes(size_quantities):
        if entry["quantity"] < 0:
            raise AllocationError(
                entry["size"],
                0,
                f"Quantity for size {entry['size'] or '(no size)'} cannot be negative.",
            )

    headroom = {
        entry["size"]: entry["max"]
        for entry in available_quantity(lagam, section_name, tasks, exclude_task_id)
    }
    for size, quantity in size_map(size_quantities).items():
        if quantity <= 0:
            continue
        max_available = headroom.get(size, 0)
        if quantity > max_available:
            raise AllocationError(size, max_available)


def lagam_status(lagam: dict, tasks: Iterable[dict]) -> str:
    """Derive the lagam status from its tasks.

    Draft when no task references the lagam, Completed when every blueprint
    section has produced the full order, Active otherwise.  A lagam without
    blueprint sections never completes.
    """

    tasks = list(tasks)
    lagam_id = lagam.get("lagamId")
    if not any(task.get("lagamId") == lagam_id for task in tasks):
        return LagamStatus.DRAFT.value

    sections = reconcile_lagam(lagam, tasks)
    if sections and all(section["isCompleted"] for section in sections):
        return LagamStatus.COMPLETED.value
    return LagamStatus.ACTIVE.value


def estimated_lagam_status(lagam: dict, tasks: Iterable[dict]) -> str:
    """Cheaper status used only for dashboard counters.

    Sums the recorded ``quantityProduced`` of every task of the lagam across
    all sections; it must not gate any write.
    """

    lagam_id = lagam.get("lagamId")
    relevant = [task for task in tasks if task.get("lagamId") == lagam_id]
    if not relevant:
        return LagamStatus.DRAFT.value
    total = sum(to_number(task.get("quantityProduced")) for task in relevant)
    if total >= ((lagam.get("productInfo") or {}).get("totalQuantity") or 0):
        return LagamStatus.COMPLETED.value
    return LagamStatus.ACTIVE.value


def lagam_progress(lagam: dict, tasks: Iterable[dict]) -> dict:
    """Overall progress read from the last blueprint section."""

    planned = (lagam.get("productInfo") or {}).get("totalQuantity") or 0
    blueprint = lagam.get("productionBlueprint") or []
    if not blueprint:
        return {"totalProduced": 0, "overallProgress": 0, "remaining": planned}

    last = reconcile_section(lagam, blueprint[-1].get("sectionName"), tasks)
    produced = last["produced"]
    return {
        "totalProduced": produced,
        "overallProgress": (produced / planned * 100) if planned else 0,
        "remaining": max(planned - produced, 0),
    }
