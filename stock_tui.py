"""Stock list: Text User Interface.

Interactive import workflow:
  paste list → parse → reconcile line by line → decide on similar names → done
plus a few direct commands (list, find, set, sort, export, snapshot).
"""

import logging
import re
import sys

from stock_core import (
    UIStrings, load_config, build_store,
    get_import_threshold, get_search_threshold, get_observation_hour,
    format_stock_list, format_date, copy_to_clipboard,
)
from stock_history import record_snapshot
from stock_matching import SORT_ORDERS, find_candidates, find_exact_match, sort_items
from stock_reconcile import (
    AmbiguousDecisionError, AwaitingDecision, Decision, Reconciler, ReconcileFailure,
)
from stock_store import StoreError

log = logging.getLogger(__name__)


# ============================================================
# Multi-line input
# ============================================================

def get_input(ui):
    """Read a multi-line paste. Empty line or Ctrl-D to finish.

    A single-line direct command returns immediately.
    """
    print(ui.s('paste_prompt'))
    exit_word = ui.s('exit_word').lower()
    lines = []
    try:
        while True:
            line = input()
            stripped = line.strip()
            if stripped.lower() == exit_word:
                return None
            if not lines and stripped and stripped.split()[0].lower() in ui.direct_commands:
                return stripped
            if stripped == '' and lines:
                break
            if stripped != '':
                lines.append(line)
    except EOFError:
        pass
    return '\n'.join(lines) if lines else None


def _confirm(prompt, ui):
    print(prompt, end='')
    return input().strip().lower() == ui.commands['yes']


# ============================================================
# Display
# ============================================================

def display_items(items, ui):
    """Print the stock list as a table."""
    if not items:
        print(ui.s('empty_list'))
        return

    table = [['#', 'ITEM', 'QTY']]
    for i, item in enumerate(items, 1):
        table.append([str(i), item.name, str(item.quantity)])

    widths = [max(len(r[c]) for r in table) for c in range(3)]
    header_line = ' | '.join(h.ljust(w) for h, w in zip(table[0], widths))
    print(f'\n{header_line}')
    print('-' * len(header_line))
    for cells in table[1:]:
        print(' | '.join(c.ljust(w) for c, w in zip(cells, widths)))


def display_cursor(cursor, ui):
    """Show the imported line next to its best match and the alternatives."""
    line = cursor.line
    when = f'  {format_date(cursor.observation_date)}' if cursor.observation_date else ''
    print(ui.s('decision_title'))
    print(ui.s('imported_label', name=line.original_name, qty=line.quantity, date=when))
    print(ui.s('existing_label', name=cursor.best_match.name, qty=cursor.best_match.quantity))
    if len(cursor.candidates) > 1:
        print(ui.s('other_candidates'))
        for num, item in enumerate(cursor.candidates[1:], 2):
            print(ui.s('candidate_line', num=num, name=item.name, qty=item.quantity))


def display_report(report, ui):
    print(ui.s('import_done',
               updated=report.updated, created=report.created,
               stale=report.stale, skipped=report.skipped,
               merged=report.merged))
    if report.cancelled:
        print(ui.s('import_cancelled', count=report.cancelled))
    if report.abandoned:
        names = ', '.join(line.original_name for line, _ in report.abandoned)
        print(ui.s('import_abandoned', names=names))


# ============================================================
# Import review
# ============================================================

def review_decisions(reconciler, outcome, ui):
    """Prompt for decisions until the import is done. Returns the Done outcome."""
    c = ui.commands
    decisions = {
        c['same']: Decision.same,
        c['different']: Decision.different,
        c['merge']: Decision.accept_suggestions,
        c['accept_all']: Decision.accept_similar,
        c['skip']: Decision.skip,
        c['cancel']: Decision.cancel,
    }

    while isinstance(outcome, AwaitingDecision):
        cursor = outcome.cursor
        display_cursor(cursor, ui)
        print(ui.s('decision_prompt'))
        cmd = input('> ').strip().lower()

        if cmd == c['help']:
            print(ui.help_text)
            continue

        if cmd.isdigit():
            num = int(cmd)
            if not 2 <= num <= len(cursor.candidates):
                print(ui.s('invalid_candidate', num=num))
                continue
            decision = Decision.promote(cursor.candidates[num - 1].id)
        else:
            make_decision = decisions.get(cmd)
            if make_decision is None:
                print(ui.s('unknown_decision'))
                continue
            decision = make_decision()

        try:
            outcome = reconciler.decide(cursor, decision)
        except AmbiguousDecisionError as exc:
            # still paused on the same cursor
            log.warning('Decision not applied: %s', exc)
            print(ui.s('decision_failed', error=exc))

    return outcome


def run_import(reconciler, text, ui):
    """Import pasted text interactively. Returns the final ImportReport."""
    batch = reconciler.start_import(text)
    if not batch.lines:
        print(ui.s('nothing_parsed'))
        return None

    when = format_date(batch.observation_date) or ui.s('no_date')
    print(ui.s('batch_summary', count=len(batch.lines), date=when))

    report = None
    while True:
        try:
            outcome = review_decisions(reconciler, reconciler.run(batch, report), ui)
        except ReconcileFailure as exc:
            print(ui.s('store_failure', name=exc.line.original_name, error=exc.__cause__))
            display_report(exc.report, ui)
            count = len(exc.batch.lines)
            if count and _confirm(ui.s('retry_prompt', count=count,
                                       yes=ui.commands['yes'],
                                       no=ui.commands['no']), ui):
                batch, report = exc.batch, exc.report
                continue
            return exc.report
        display_report(outcome.report, ui)
        return outcome.report


# ============================================================
# Direct commands
# ============================================================

def resolve_item(items, name, threshold):
    """Exact name first, then the most similar item, else None."""
    exact = find_exact_match(name, items)
    if exact is not None:
        return exact
    candidates = find_candidates(name, items, threshold)
    return candidates[0] if candidates else None


def set_quantity_command(store, args, config, ui):
    m = re.match(r'^(.*\S)\s+(\d+)$', args)
    if not m:
        print(ui.s('set_usage'))
        return
    name, qty = m.group(1), int(m.group(2))
    item = resolve_item(store.list_items(), name, get_search_threshold(config))
    if item is None:
        print(ui.s('item_not_found', name=name))
        return
    store.set_quantity(item.id, qty)
    print(ui.s('quantity_set', name=item.name, qty=qty))


def export_stock_list(store, config, ui, order='custom'):
    """Save today's history, then copy the stock list to the clipboard."""
    record_snapshot(store)
    items = sort_items(store.list_items(), order)
    text = format_stock_list(items, config)
    if copy_to_clipboard(text):
        print(ui.s('clipboard_copied', count=len(items)))
    else:
        print(ui.s('clipboard_failed'))
        print(text)
    return text


def handle_command(text, store, config, ui, view):
    """Run a direct command. Returns False if *text* is not one."""
    text = text.strip()
    if not text or '\n' in text:
        return False
    cmd, _, args = text.partition(' ')
    cmd, args = cmd.lower(), args.strip()

    if cmd == ui.s('cmd_help'):
        print(ui.help_text)
    elif cmd == ui.s('cmd_list'):
        display_items(sort_items(store.list_items(), view['order']), ui)
    elif cmd == ui.s('cmd_find'):
        found = sort_items(store.list_items(), query=args,
                           threshold=get_search_threshold(config))
        if found:
            display_items(found, ui)
        else:
            print(ui.s('no_search_results', query=args))
    elif cmd == ui.s('cmd_sort'):
        if args in SORT_ORDERS:
            view['order'] = args
            print(ui.s('sort_changed', order=args))
        else:
            print(ui.s('invalid_sort', orders=', '.join(SORT_ORDERS)))
    elif cmd == ui.s('cmd_set'):
        set_quantity_command(store, args, config, ui)
    elif cmd == ui.s('cmd_export'):
        export_stock_list(store, config, ui, view['order'])
    elif cmd == ui.s('cmd_snapshot'):
        print(ui.s('snapshot_saved', count=record_snapshot(store)))
    else:
        return False
    return True


# ============================================================
# Main
# ============================================================

def main(config_path='config.yaml'):
    try:
        config = load_config(config_path)
    except FileNotFoundError:
        ui = UIStrings({})
        print(ui.s('config_not_found', path=config_path))
        print(ui.s('config_hint'))
        sys.exit(1)

    logging.basicConfig(
        level=config.get('log_level', 'WARNING'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    ui = UIStrings(config)
    store = build_store(config)
    view = {'order': config.get('sort_order', 'custom')}

    def refresh():
        display_items(sort_items(store.list_items(), view['order']), ui)

    reconciler = Reconciler(
        store,
        threshold=get_import_threshold(config),
        hour=get_observation_hour(config),
        on_done=refresh,
    )

    print(ui.s('title'))
    print(ui.s('subtitle'))

    while True:
        raw_text = get_input(ui)
        if raw_text is None:
            print(ui.s('goodbye'))
            break
        try:
            if handle_command(raw_text, store, config, ui, view):
                continue
            run_import(reconciler, raw_text, ui)
        except StoreError as exc:
            log.error('Store error: %s', exc)
            print(ui.s('store_error', error=exc))


if __name__ == '__main__':
    config_path = sys.argv[1] if len(sys.argv) > 1 else 'config.yaml'
    main(config_path)
