from typing import List, Sequence, TypeVar

from talent_match.models.models import SourceRecord, WorkItem

T = TypeVar("T")


def make_work_items(records: Sequence[SourceRecord]) -> List[WorkItem]:
    return [WorkItem(index=i, record=record) for i, record in enumerate(records)]


def plan_groups(items: Sequence[T], group_size: int) -> List[List[T]]:
    """Split items into consecutive groups of group_size; only the last may be shorter."""
    if group_size < 1:
        raise ValueError("group_size must be at least 1")
    return [list(items[i:i + group_size]) for i in range(0, len(items), group_size)]


def plan_batches(items: Sequence[T], group_size: int, parallelism: int) -> List[List[List[T]]]:
    """
    Partition items into batches of up to `parallelism` groups.

    Order is preserved within and across groups and batches, so flattening
    the result gives back the input unchanged.
    """
    if parallelism < 1:
        raise ValueError("parallelism must be at least 1")
    groups = plan_groups(items, group_size)
    return [groups[i:i + parallelism] for i in range(0, len(groups), parallelism)]
