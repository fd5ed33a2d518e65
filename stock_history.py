"""Quantity history rules.

Pure decisions about when an imported quantity is written to an item and
when it is recorded as an observation, plus the two history-rewriting
operations: consolidating two items into one and the daily snapshot.

All dates are naive local datetimes; "same day" means same calendar date.
"""

import logging
from datetime import datetime

log = logging.getLogger(__name__)


# ============================================================
# Decision rules
# ============================================================

def same_day(a, b):
    return a.date() == b.date()


def has_observation_on_date(history, when):
    return any(same_day(obs.date, when) for obs in history)


def latest_observation_date(history):
    if not history:
        return None
    return max(obs.date for obs in history)


def should_overwrite_quantity(latest, import_date):
    """A first or strictly newer observation replaces the current quantity."""
    return latest is None or latest < import_date


def should_record_observation(history, when):
    """Record at most one observation per item per day, and only dated ones."""
    return when is not None and not has_observation_on_date(history, when)


def is_stale_import(latest, when):
    """True if the item already has history from *when*'s day or later."""
    if latest is None:
        return False
    return same_day(latest, when) or when < latest


# ============================================================
# Consolidation
# ============================================================

def plan_consolidation(source_history, target_history):
    """Split the source's observations into (moved, dropped).

    Observations on a day the target already covers are dropped; the
    target's own observation for that day wins.
    """
    moved, dropped = [], []
    for obs in source_history:
        if has_observation_on_date(target_history, obs.date):
            dropped.append(obs)
        else:
            moved.append(obs)
    return moved, dropped


def consolidate(store, source_id, target_id):
    """Merge the source item's history into the target and delete the source.

    The target's quantity is left as it is. Returns the number of
    observations moved.
    """
    if source_id == target_id:
        raise ValueError('Cannot consolidate an item into itself')

    moved, dropped = plan_consolidation(store.list_observations(source_id),
                                        store.list_observations(target_id))
    for obs in dropped:
        store.delete_observation(obs.id)
    store.reparent_observations(source_id, target_id)
    store.delete_item(source_id)

    log.info('Consolidated item %s into %s (%d moved, %d same-day dropped)',
             source_id, target_id, len(moved), len(dropped))
    return len(moved)


# ============================================================
# Daily snapshot
# ============================================================

def record_snapshot(store, when=None):
    """Record every item's current quantity as its observation for *when*.

    An existing observation on the same day is replaced. Returns the number
    of items recorded.
    """
    if when is None:
        when = datetime.now()

    count = 0
    for item in store.list_items():
        for obs in store.list_observations(item.id):
            if same_day(obs.date, when):
                store.delete_observation(obs.id)
        store.append_observation(item.id, item.quantity, when)
        count += 1
    log.info('Recorded snapshot of %d item(s) for %s', count, when.date())
    return count
