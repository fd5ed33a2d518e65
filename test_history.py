"""Tests for quantity history rules, consolidation and daily snapshots."""

import pytest
from datetime import datetime

from stock_history import (
    has_observation_on_date, latest_observation_date, should_overwrite_quantity,
    should_record_observation, is_stale_import, plan_consolidation,
    consolidate, record_snapshot,
)
from stock_store import Item, MemoryStore, Observation


def obs(obs_id, item_id, day, hour=20, quantity=1):
    return Observation(id=obs_id, item_id=item_id, quantity=quantity,
                       date=datetime(2025, 3, day, hour))


# ============================================================
# Decision rules
# ============================================================

class TestRules:
    def test_record_on_empty_history(self):
        assert should_record_observation([], datetime(2025, 3, 1, 20))

    def test_no_second_record_same_day(self):
        history = [obs(1, 1, day=1, hour=8)]
        assert not should_record_observation(history, datetime(2025, 3, 1, 23))

    def test_record_other_day(self):
        assert should_record_observation([obs(1, 1, day=1)], datetime(2025, 3, 2, 20))

    def test_never_record_without_date(self):
        assert not should_record_observation([], None)

    def test_has_observation_on_date(self):
        history = [obs(1, 1, day=1), obs(2, 1, day=3)]
        assert has_observation_on_date(history, datetime(2025, 3, 3, 1))
        assert not has_observation_on_date(history, datetime(2025, 3, 2, 20))

    def test_latest(self):
        assert latest_observation_date([]) is None
        history = [obs(1, 1, day=1), obs(2, 1, day=7), obs(3, 1, day=3)]
        assert latest_observation_date(history) == datetime(2025, 3, 7, 20)

    def test_overwrite_first_observation(self):
        assert should_overwrite_quantity(None, datetime(2025, 3, 1, 20))

    @pytest.mark.parametrize('latest_day, import_day, expected', [
        (1, 2, True),
        (2, 2, False),
        (3, 2, False),
    ])
    def test_overwrite_only_when_newer(self, latest_day, import_day, expected):
        latest = datetime(2025, 3, latest_day, 20)
        assert should_overwrite_quantity(latest, datetime(2025, 3, import_day, 20)) is expected

    def test_stale_same_day_even_if_later_hour(self):
        assert is_stale_import(datetime(2025, 3, 1, 8), datetime(2025, 3, 1, 20))

    def test_stale_when_history_newer(self):
        assert is_stale_import(datetime(2025, 3, 5, 20), datetime(2025, 3, 1, 20))

    def test_not_stale(self):
        assert not is_stale_import(None, datetime(2025, 3, 1, 20))
        assert not is_stale_import(datetime(2025, 2, 28, 20), datetime(2025, 3, 1, 20))


# ============================================================
# Consolidation
# ============================================================

@pytest.fixture
def store():
    return MemoryStore(
        items=[Item(id=1, name='Batata Doce', quantity=3),
               Item(id=2, name='Batata', quantity=7)],
        observations=[
            obs(1, 1, day=1), obs(2, 1, day=2),
            obs(3, 2, day=3), obs(4, 2, day=4), obs(5, 2, day=5),
        ],
    )


class TestConsolidate:
    def test_moves_history_and_deletes_source(self, store):
        moved = consolidate(store, 1, 2)
        assert moved == 2
        assert store.get_item(1) is None
        assert len(store.list_observations(2)) == 5

    def test_target_quantity_untouched(self, store):
        consolidate(store, 1, 2)
        assert store.get_item(2).quantity == 7

    def test_same_day_collision_keeps_target(self, store):
        store.append_observation(1, 99, datetime(2025, 3, 4, 9))
        consolidate(store, 1, 2)
        history = store.list_observations(2)
        assert len(history) == 5
        on_the_4th = [o for o in history if o.date.day == 4]
        assert [o.id for o in on_the_4th] == [4]

    def test_into_itself(self, store):
        with pytest.raises(ValueError):
            consolidate(store, 2, 2)

    def test_plan(self):
        source = [obs(1, 1, day=1), obs(2, 1, day=2)]
        target = [obs(3, 2, day=2, hour=7)]
        moved, dropped = plan_consolidation(source, target)
        assert [o.id for o in moved] == [1]
        assert [o.id for o in dropped] == [2]


# ============================================================
# Daily snapshot
# ============================================================

class TestRecordSnapshot:
    def test_records_every_item(self, store):
        count = record_snapshot(store, datetime(2025, 3, 10, 21))
        assert count == 2
        assert store.list_observations(1)[0].quantity == 3
        assert store.list_observations(2)[0].quantity == 7

    def test_replaces_same_day_observation(self, store):
        record_snapshot(store, datetime(2025, 3, 5, 21))
        history = store.list_observations(2)
        assert len(history) == 3
        assert history[0].date == datetime(2025, 3, 5, 21)
        assert history[0].quantity == 7

    def test_empty_store(self):
        assert record_snapshot(MemoryStore(), datetime(2025, 3, 5)) == 0
