import pytest

from talent_match.models.models import SourceRecord
from talent_match.services.batching import make_work_items, plan_batches, plan_groups


class TestPlanGroups:
    """Grouping of ordered work into fixed-size groups"""

    def test_last_group_may_be_shorter(self):
        groups = plan_groups(list(range(12)), 5)
        assert groups == [[0, 1, 2, 3, 4], [5, 6, 7, 8, 9], [10, 11]]

    def test_empty_input(self):
        assert plan_groups([], 5) == []

    def test_invalid_group_size(self):
        with pytest.raises(ValueError):
            plan_groups([1, 2], 0)


class TestPlanBatches:
    """Batching of groups by parallelism width"""

    def test_seven_items_is_two_groups_in_one_batch(self):
        batches = plan_batches(list(range(7)), group_size=5, parallelism=3)
        assert len(batches) == 1
        assert batches[0] == [[0, 1, 2, 3, 4], [5, 6]]

    def test_flattening_restores_input_order(self):
        items = list(range(37))
        batches = plan_batches(items, group_size=4, parallelism=3)
        flattened = [x for batch in batches for group in batch for x in group]
        assert flattened == items
        assert all(len(batch) <= 3 for batch in batches)
        assert len(batches) == 4  # 10 groups -> 3 + 3 + 3 + 1

    def test_invalid_parallelism(self):
        with pytest.raises(ValueError):
            plan_batches([1], group_size=1, parallelism=0)


def test_make_work_items_indexes_by_position():
    records = [SourceRecord(id="a"), SourceRecord(id="b")]
    items = make_work_items(records)
    assert [(i.index, i.record.id) for i in items] == [(0, "a"), (1, "b")]
