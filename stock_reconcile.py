"""Import reconciliation.

Walks an ImportBatch line by line against the live catalog:

  exact name match   → update the item, continue
  similar items      → pause and wait for a user decision
  nothing similar    → create a new item, continue

The pause is explicit state: run()/decide() return either
AwaitingDecision(cursor) or Done(report), and the caller resumes by
passing the cursor back with a Decision.
"""

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from stock_history import (
    consolidate, is_stale_import, latest_observation_date,
    should_overwrite_quantity, should_record_observation,
)
from stock_matching import find_candidates, find_exact_match
from stock_parser import DEFAULT_OBSERVATION_HOUR, ImportBatch, parse
from stock_store import StoreError

log = logging.getLogger(__name__)

DEFAULT_IMPORT_THRESHOLD = 0.5


# ============================================================
# States, outcomes, decisions
# ============================================================

class State(Enum):
    IDLE = 'idle'
    AWAITING_DECISION = 'awaiting_decision'
    DONE = 'done'


@dataclass(frozen=True)
class Cursor:
    """An import paused on *line*, which resembles existing items."""
    line: object
    candidates: tuple
    best_match: object
    remaining: tuple
    observation_date: datetime = None


@dataclass
class ImportReport:
    updated: int = 0
    created: int = 0
    stale: int = 0
    skipped: int = 0
    merged: int = 0
    cancelled: int = 0
    abandoned: list = field(default_factory=list)

    @property
    def succeeded(self):
        return self.updated + self.created + self.stale


@dataclass(frozen=True)
class AwaitingDecision:
    cursor: Cursor


@dataclass(frozen=True)
class Done:
    report: ImportReport


class DecisionKind(Enum):
    SAME = 'same'
    DIFFERENT = 'different'
    ACCEPT_SUGGESTIONS = 'accept_suggestions'
    ACCEPT_SIMILAR = 'accept_similar'
    SKIP = 'skip'
    CANCEL = 'cancel'
    PROMOTE = 'promote'


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    item_id: object = None

    @classmethod
    def same(cls):
        return cls(DecisionKind.SAME)

    @classmethod
    def different(cls):
        return cls(DecisionKind.DIFFERENT)

    @classmethod
    def accept_suggestions(cls):
        return cls(DecisionKind.ACCEPT_SUGGESTIONS)

    @classmethod
    def accept_similar(cls):
        return cls(DecisionKind.ACCEPT_SIMILAR)

    @classmethod
    def skip(cls):
        return cls(DecisionKind.SKIP)

    @classmethod
    def cancel(cls):
        return cls(DecisionKind.CANCEL)

    @classmethod
    def promote(cls, item_id):
        return cls(DecisionKind.PROMOTE, item_id)


# ============================================================
# Errors
# ============================================================

class ReconcileError(Exception):
    pass


class AmbiguousDecisionError(ReconcileError):
    """A decision does not apply to the reconciler's current state."""


class ReconcileFailure(ReconcileError):
    """A store operation failed while processing *line*.

    The line is abandoned. *batch* holds the lines that were not reached,
    with the same observation date, so run(batch) can retry them.
    """

    def __init__(self, line, batch, report):
        super().__init__(f'Import of {line.original_name!r} failed')
        self.line = line
        self.batch = batch
        self.report = report


# ============================================================
# Reconciler
# ============================================================

_NEEDS_LIVE_MATCH = (
    DecisionKind.SAME,
    DecisionKind.ACCEPT_SUGGESTIONS,
    DecisionKind.ACCEPT_SIMILAR,
)


class Reconciler:
    """Reconciles import batches against one store, one batch at a time."""

    def __init__(self, store, threshold=DEFAULT_IMPORT_THRESHOLD, on_done=None,
                 clock=datetime.now, hour=DEFAULT_OBSERVATION_HOUR):
        self.store = store
        self.threshold = threshold
        self.on_done = on_done
        self.hour = hour
        self._clock = clock
        self._state = State.IDLE
        self._cursor = None
        self._report = ImportReport()

    @property
    def state(self):
        return self._state

    @property
    def cursor(self):
        return self._cursor

    @property
    def report(self):
        return self._report

    def start_import(self, text, today=None):
        """Parse *text*. Nothing is written to the store."""
        if today is None:
            today = self._clock().date()
        batch = parse(text, today=today, hour=self.hour)
        log.info('Parsed %d import line(s), date %s',
                 len(batch.lines), batch.observation_date)
        return batch

    def run(self, batch, report=None):
        """Reconcile *batch*. Pass the report of a failed run to continue it."""
        if self._state is State.AWAITING_DECISION:
            raise AmbiguousDecisionError('An import is already waiting for a decision')
        self._report = report if report is not None else ImportReport()
        self._state = State.IDLE
        return self._drain(batch.lines, batch.observation_date)

    def decide(self, cursor, decision):
        if self._state is not State.AWAITING_DECISION:
            raise AmbiguousDecisionError('No import is waiting for a decision')
        if cursor is not self._cursor:
            raise AmbiguousDecisionError('Decision refers to a stale cursor')

        kind = decision.kind
        if kind is DecisionKind.PROMOTE:
            return self._promote(cursor, decision.item_id)

        remaining = list(cursor.remaining)
        when = cursor.observation_date

        if kind in _NEEDS_LIVE_MATCH:
            try:
                catalog = self.store.list_items()
            except StoreError as exc:
                self._abandon(cursor.line, remaining, when, exc)
            self._check_live(cursor, kind, catalog)

        self._cursor = None
        self._state = State.IDLE

        if kind is DecisionKind.CANCEL:
            # the paused line is discarded along with the queue
            self._report.cancelled += len(remaining) + 1
            log.info('Import cancelled, %d line(s) discarded', self._report.cancelled)
            return self._finish()

        try:
            if kind is DecisionKind.SAME:
                self._apply_same(cursor.best_match, cursor.line, when)
            elif kind is DecisionKind.DIFFERENT:
                self._create(cursor.line, when)
            elif kind is DecisionKind.ACCEPT_SUGGESTIONS:
                self._accept_suggestions(cursor)
            elif kind is DecisionKind.ACCEPT_SIMILAR:
                remaining = self._accept_similar(cursor)
            elif kind is DecisionKind.SKIP:
                self._report.skipped += 1
            else:
                raise ValueError(f'Unknown decision: {kind}')
        except StoreError as exc:
            self._abandon(cursor.line, remaining, when, exc)

        return self._drain(remaining, when)

    # -- queue --

    def _drain(self, lines, when):
        queue = deque(lines)
        while queue:
            line = queue.popleft()
            try:
                outcome = self._process_line(line, queue, when)
            except StoreError as exc:
                self._abandon(line, queue, when, exc)
            if outcome is not None:
                return outcome
        return self._finish()

    def _process_line(self, line, queue, when):
        catalog = self.store.list_items()

        exact = find_exact_match(line.original_name, catalog)
        if exact is not None:
            self._apply_exact(exact, line, when)
            return None

        candidates = find_candidates(line.original_name, catalog, self.threshold)
        if candidates:
            cursor = Cursor(
                line=line,
                candidates=tuple(candidates),
                best_match=candidates[0],
                remaining=tuple(queue),
                observation_date=when,
            )
            self._cursor = cursor
            self._state = State.AWAITING_DECISION
            log.info('Waiting for decision on %r (best match %r, %d candidate(s))',
                     line.original_name, cursor.best_match.name, len(candidates))
            return AwaitingDecision(cursor)

        self._create(line, when)
        return None

    def _finish(self):
        self._state = State.DONE
        self._cursor = None
        r = self._report
        log.info('Import done: %d updated, %d created, %d stale, %d skipped, '
                 '%d merged, %d abandoned', r.updated, r.created, r.stale,
                 r.skipped, r.merged, len(r.abandoned))
        if self.on_done is not None:
            self.on_done()
        return Done(r)

    def _abandon(self, line, queue, when, exc):
        self._report.abandoned.append((line, str(exc)))
        self._state = State.DONE
        self._cursor = None
        log.error('Abandoned import line %r: %s', line.original_name, exc)
        if self.on_done is not None:
            self.on_done()
        raise ReconcileFailure(line, ImportBatch(when, list(queue)),
                               self._report) from exc

    # -- writes --

    def _apply_exact(self, item, line, when):
        history = self.store.list_observations(item.id)
        effective = when or self._clock()
        if should_overwrite_quantity(latest_observation_date(history), effective):
            self.store.set_quantity(item.id, line.quantity)
            self._report.updated += 1
        else:
            self._report.stale += 1
        if should_record_observation(history, when):
            self.store.append_observation(item.id, line.quantity, when)

    def _apply_same(self, item, line, when):
        history = self.store.list_observations(item.id)
        latest = latest_observation_date(history)
        if should_record_observation(history, when):
            self.store.append_observation(item.id, line.quantity, when)

        if is_stale_import(latest, when or self._clock()):
            log.info('Kept quantity of %r: history is as new as the import', item.name)
            self._report.stale += 1
            return
        self.store.set_quantity(item.id, line.quantity)
        self._report.updated += 1

    def _create(self, line, when):
        item_id = self.store.create_item(line.original_name, line.quantity)
        self._report.created += 1
        if should_record_observation((), when):
            self.store.append_observation(item_id, line.quantity, when)
        return item_id

    def _accept_suggestions(self, cursor):
        target = cursor.best_match
        for other in cursor.candidates:
            if other.id == target.id:
                continue
            consolidate(self.store, other.id, target.id)
            self._report.merged += 1
        self.store.set_quantity(target.id, cursor.line.quantity)
        self._report.updated += 1

    def _accept_similar(self, cursor):
        """Apply the current line, then every remaining line with a match.

        Returns the lines left for individual handling. An item updated
        earlier in the sweep is not overwritten again.
        """
        catalog = self.store.list_items()
        self.store.set_quantity(cursor.best_match.id, cursor.line.quantity)
        self._report.updated += 1
        touched = {cursor.best_match.id}

        kept = []
        for line in cursor.remaining:
            candidates = find_candidates(line.original_name, catalog, self.threshold)
            if not candidates or candidates[0].id in touched:
                kept.append(line)
                continue
            top = candidates[0]
            try:
                self.store.set_quantity(top.id, line.quantity)
            except StoreError as exc:
                log.warning('Could not update %r from %r: %s',
                            top.name, line.original_name, exc)
                self._report.abandoned.append((line, str(exc)))
                continue
            touched.add(top.id)
            self._report.updated += 1
        return kept

    def _promote(self, cursor, item_id):
        chosen = next((c for c in cursor.candidates if c.id == item_id), None)
        if chosen is None:
            raise AmbiguousDecisionError(f'Item {item_id} is not a candidate')
        others = tuple(c for c in cursor.candidates if c.id != item_id)
        promoted = replace(cursor, best_match=chosen, candidates=(chosen,) + others)
        self._cursor = promoted
        return AwaitingDecision(promoted)

    def _check_live(self, cursor, kind, catalog):
        live = {item.id for item in catalog}
        needed = [cursor.best_match]
        if kind is DecisionKind.ACCEPT_SUGGESTIONS:
            needed = cursor.candidates
        missing = [item.name for item in needed if item.id not in live]
        if missing:
            raise AmbiguousDecisionError(
                f'Catalog changed since the cursor was created: {missing} no longer exist')
