"""Tests for the in-memory stock store."""

import pytest
from datetime import datetime

from stock_store import Item, MemoryStore, Observation, StoreError


@pytest.fixture
def store():
    return MemoryStore(
        items=[Item(id=1, name='Batata', quantity=5, order=0),
               Item(id=2, name='Arroz', quantity=10, order=1)],
        observations=[Observation(id=1, item_id=1, quantity=4,
                                  date=datetime(2025, 3, 1, 20))],
    )


class TestItems:
    def test_list_in_display_order(self, store):
        assert [i.name for i in store.list_items()] == ['Batata', 'Arroz']

    def test_create_appends_with_next_id(self, store):
        item_id = store.create_item('  Milho ', 3)
        assert item_id == 3
        created = store.get_item(item_id)
        assert created.name == 'Milho'
        assert created.order == 2
        assert store.list_items()[-1].id == item_id

    def test_create_duplicate_name(self, store):
        with pytest.raises(StoreError):
            store.create_item('Batata', 1)

    def test_create_negative_quantity(self, store):
        with pytest.raises(StoreError):
            store.create_item('Milho', -1)

    def test_set_quantity(self, store):
        store.set_quantity(1, 9)
        assert store.get_item(1).quantity == 9

    def test_set_quantity_unknown_item(self, store):
        with pytest.raises(StoreError):
            store.set_quantity(99, 1)

    def test_get_item_missing(self, store):
        assert store.get_item(99) is None

    def test_delete_cascades_history(self, store):
        store.delete_item(1)
        assert store.get_item(1) is None
        assert store.list_observations(1) == []

    def test_delete_unknown_item(self, store):
        with pytest.raises(StoreError):
            store.delete_item(99)


class TestObservations:
    def test_list_newest_first(self, store):
        store.append_observation(1, 6, datetime(2025, 3, 5, 20))
        store.append_observation(1, 2, datetime(2025, 2, 1, 20))
        dates = [o.date.day for o in store.list_observations(1)]
        assert dates == [5, 1, 1]

    def test_append_unknown_item(self, store):
        with pytest.raises(StoreError):
            store.append_observation(99, 1, datetime(2025, 3, 5))

    def test_delete_observation(self, store):
        store.delete_observation(1)
        assert store.list_observations(1) == []
        with pytest.raises(StoreError):
            store.delete_observation(1)

    def test_reparent(self, store):
        store.reparent_observations(1, 2)
        assert store.list_observations(1) == []
        assert [o.quantity for o in store.list_observations(2)] == [4]

    def test_reparent_to_missing_target(self, store):
        with pytest.raises(StoreError):
            store.reparent_observations(1, 99)
        assert len(store.list_observations(1)) == 1
