"""Stock store: items and their quantity history.

StockStore lists the operations the import engine needs. MemoryStore keeps
everything in dicts; stock_sheets.SheetsStore persists to Google Sheets.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Item:
    id: int
    name: str
    quantity: int
    order: int = 0


@dataclass(frozen=True)
class Observation:
    id: int
    item_id: int
    quantity: int
    date: datetime


class StoreError(Exception):
    """A store operation failed (missing record, backend error, ...)."""


class StockStore:
    """Operations every store backend provides.

    Reads reflect all writes made earlier in the same process. Each single
    operation is atomic; nothing spans several operations.
    """

    def list_items(self):
        """All items, in display order."""
        raise NotImplementedError

    def create_item(self, name, quantity):
        """Create an item at the end of the list and return its id."""
        raise NotImplementedError

    def set_quantity(self, item_id, quantity):
        raise NotImplementedError

    def delete_item(self, item_id):
        """Delete the item and any history still attached to it."""
        raise NotImplementedError

    def append_observation(self, item_id, quantity, date):
        raise NotImplementedError

    def list_observations(self, item_id):
        """History of one item, newest first."""
        raise NotImplementedError

    def delete_observation(self, observation_id):
        raise NotImplementedError

    def reparent_observations(self, from_item_id, to_item_id):
        """Move every observation of one item to another."""
        raise NotImplementedError

    def get_item(self, item_id):
        for item in self.list_items():
            if item.id == item_id:
                return item
        return None


def _check_quantity(quantity):
    if quantity < 0:
        raise StoreError(f'Quantity must be >= 0, got {quantity}')


# ============================================================
# In-memory store
# ============================================================

class MemoryStore(StockStore):
    def __init__(self, items=None, observations=None):
        self._items = {}
        self._observations = {}
        self._next_item_id = 1
        self._next_observation_id = 1
        for item in items or []:
            self._items[item.id] = item
            self._next_item_id = max(self._next_item_id, item.id + 1)
        for obs in observations or []:
            self._observations[obs.id] = obs
            self._next_observation_id = max(self._next_observation_id, obs.id + 1)

    def _require_item(self, item_id):
        try:
            return self._items[item_id]
        except KeyError:
            raise StoreError(f'No item with id {item_id}') from None

    # -- items --

    def list_items(self):
        return sorted(self._items.values(), key=lambda i: (i.order, i.id))

    def create_item(self, name, quantity):
        name = name.strip()
        _check_quantity(quantity)
        if any(i.name == name for i in self._items.values()):
            raise StoreError(f'Item {name!r} already exists')
        order = max((i.order for i in self._items.values()), default=-1) + 1
        item = Item(id=self._next_item_id, name=name, quantity=quantity, order=order)
        self._items[item.id] = item
        self._next_item_id += 1
        log.debug('Created item %s %r (qty %s)', item.id, name, quantity)
        return item.id

    def set_quantity(self, item_id, quantity):
        _check_quantity(quantity)
        item = self._require_item(item_id)
        self._items[item_id] = replace(item, quantity=quantity)

    def delete_item(self, item_id):
        self._require_item(item_id)
        del self._items[item_id]
        for obs_id in [o.id for o in self._observations.values() if o.item_id == item_id]:
            del self._observations[obs_id]

    # -- history --

    def append_observation(self, item_id, quantity, date):
        self._require_item(item_id)
        obs = Observation(id=self._next_observation_id, item_id=item_id,
                          quantity=quantity, date=date)
        self._observations[obs.id] = obs
        self._next_observation_id += 1
        return obs.id

    def list_observations(self, item_id):
        history = [o for o in self._observations.values() if o.item_id == item_id]
        return sorted(history, key=lambda o: o.date, reverse=True)

    def delete_observation(self, observation_id):
        if self._observations.pop(observation_id, None) is None:
            raise StoreError(f'No observation with id {observation_id}')

    def reparent_observations(self, from_item_id, to_item_id):
        self._require_item(to_item_id)
        for obs in list(self._observations.values()):
            if obs.item_id == from_item_id:
                self._observations[obs.id] = replace(obs, item_id=to_item_id)
