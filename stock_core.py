"""Stock list core: shared logic used by the TUI.

Config loading, UI strings, store selection, stock-list export text,
emoji lookup, clipboard export.
"""

import shutil
import subprocess
from datetime import date

import yaml

from stock_matching import SORT_ORDERS
from stock_parser import DEFAULT_OBSERVATION_HOUR
from stock_reconcile import DEFAULT_IMPORT_THRESHOLD
from stock_store import MemoryStore


# ============================================================
# UI Strings: all user-facing text, configurable per language
# ============================================================

_EN_DEFAULTS = {
    'commands': {
        'same': 's',
        'different': 'n',
        'merge': 'm',
        'accept_all': 'a',
        'skip': 'k',
        'cancel': 'q',
        'help': '?',
        'yes': 'y',
        'no': 'n',
    },
    'strings': {
        'title': '=== Stock List ===',
        'subtitle': "Paste a stock list to import it. Type '?' for commands, 'exit' to quit.\n",
        'paste_prompt': '\nPaste a stock list (empty line to finish):',
        'exit_word': 'exit',
        'goodbye': 'Goodbye.',
        'config_not_found': 'Config file not found: {path}',
        'config_hint': 'Create one based on config.yaml.example',
        # Direct commands at the paste prompt
        'cmd_list': 'list',
        'cmd_find': 'find',
        'cmd_set': 'set',
        'cmd_sort': 'sort',
        'cmd_export': 'export',
        'cmd_snapshot': 'snapshot',
        'cmd_help': '?',
        # Item list
        'empty_list': '\n(no items yet)',
        'no_search_results': '  No items similar to "{query}".',
        'sort_changed': '  Sorting by {order}.',
        'invalid_sort': '  Unknown sort order. Use one of: {orders}',
        'set_usage': '  Usage: set <name> <quantity>',
        'item_not_found': '  No item matches "{name}".',
        'quantity_set': '  {name} → {qty}',
        # Import
        'nothing_parsed': '  No item lines found (each line needs a name and one number).',
        'batch_summary': '\n{count} line(s) to import. Date: {date}',
        'no_date': 'none (using now)',
        'decision_title': '\n=== Similar items ===',
        'imported_label': 'Imported:  {name}  (qty {qty}){date}',
        'existing_label': 'Existing:  {name}  (qty {qty})',
        'other_candidates': 'Other similar items (type a number to use it instead):',
        'candidate_line': '  [{num}] {name}  (qty {qty})',
        'decision_prompt': '\n[s]ame item / [n]ew item / [m]erge all suggestions / '
                           '[a]ccept all similar / s[k]ip / [q]uit import  (? for help)',
        'unknown_decision': '  Unknown command. Type ? for help.',
        'invalid_candidate': '  No candidate number {num}.',
        'decision_failed': '  Could not apply that decision: {error}',
        'import_done': '\nImport finished: {updated} updated, {created} created, '
                       '{stale} kept (newer history), {skipped} skipped, {merged} merged.',
        'import_cancelled': '  {count} line(s) were not imported.',
        'import_abandoned': '  Failed: {names}',
        'store_failure': '\n  Could not save "{name}": {error}',
        'retry_prompt': 'Retry the remaining {count} line(s)? [{yes}/{no}] ',
        'store_error': '\n  Store error: {error}',
        # Export
        'export_greeting': 'Stock list {date}',
        'export_header': "Today's stock:",
        'clipboard_copied': '\n({count} item(s) copied to clipboard)',
        'clipboard_failed': '\nCould not copy to clipboard. Showing the list instead:\n',
        'snapshot_saved': '  History saved for {count} item(s).',
        # Help text building blocks
        'help_commands_header': 'Commands:',
        'help_decisions_header': 'While importing:',
        'help_list_desc': 'Show the stock list',
        'help_find_desc': 'Search items by similar name',
        'help_set_desc': 'Set the quantity of an item',
        'help_sort_desc': 'Change list order ({orders})',
        'help_export_desc': 'Save today\'s history and copy the stock list',
        'help_snapshot_desc': 'Save today\'s history only',
        'help_exit_desc': 'Quit',
        'help_same_desc': 'Same item: update the existing quantity',
        'help_different_desc': 'Different item: create a new one',
        'help_merge_desc': 'Merge every similar item into the first one and update it',
        'help_accept_all_desc': 'Update the top match of this and every remaining line',
        'help_skip_desc': 'Skip this line',
        'help_cancel_desc': 'Stop importing (remaining lines are discarded)',
        'help_promote_desc': 'Use another similar item as the match',
    },
}


class UIStrings:
    """All user-facing strings and commands.

    Reads from config['ui'] if present; falls back to English defaults.
    """

    def __init__(self, config):
        ui = config.get('ui', {})
        self.commands = {**_EN_DEFAULTS['commands'], **ui.get('commands', {})}
        self.strings = {**_EN_DEFAULTS['strings'], **ui.get('strings', {})}
        self.direct_commands = {
            self.s(key).lower() for key in
            ('cmd_list', 'cmd_find', 'cmd_set', 'cmd_sort',
             'cmd_export', 'cmd_snapshot', 'cmd_help')
        }
        self.help_text = self._build_help()

    def s(self, key, **kwargs):
        """Get a UI string, with optional format substitution."""
        template = self.strings.get(key, key)
        if kwargs:
            return template.format(**kwargs)
        return template

    def _build_help(self):
        c = self.commands
        lines = [
            self.s('help_commands_header'),
            f'  {self.s("cmd_list"):16s} {self.s("help_list_desc")}',
            f'  {self.s("cmd_find") + " <name>":16s} {self.s("help_find_desc")}',
            f'  {self.s("cmd_set") + " <name> <n>":16s} {self.s("help_set_desc")}',
            f'  {self.s("cmd_sort") + " <order>":16s} '
            f'{self.s("help_sort_desc", orders=", ".join(SORT_ORDERS))}',
            f'  {self.s("cmd_export"):16s} {self.s("help_export_desc")}',
            f'  {self.s("cmd_snapshot"):16s} {self.s("help_snapshot_desc")}',
            f'  {self.s("exit_word"):16s} {self.s("help_exit_desc")}',
            '',
            self.s('help_decisions_header'),
            f'  {c["same"]:16s} {self.s("help_same_desc")}',
            f'  {c["different"]:16s} {self.s("help_different_desc")}',
            f'  {c["merge"]:16s} {self.s("help_merge_desc")}',
            f'  {c["accept_all"]:16s} {self.s("help_accept_all_desc")}',
            f'  {c["skip"]:16s} {self.s("help_skip_desc")}',
            f'  {c["cancel"]:16s} {self.s("help_cancel_desc")}',
            f'  {"<number>":16s} {self.s("help_promote_desc")}',
        ]
        return '\n'.join(lines)


# ============================================================
# Config loading
# ============================================================

def load_config(path):
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def get_import_threshold(config):
    return config.get('matching', {}).get('import_threshold', DEFAULT_IMPORT_THRESHOLD)


def get_search_threshold(config):
    return config.get('matching', {}).get('search_threshold', 0.5)


def get_observation_hour(config):
    return config.get('observation_hour', DEFAULT_OBSERVATION_HOUR)


def build_store(config):
    """Create the store named by config['store']['backend']."""
    backend = config.get('store', {}).get('backend', 'memory')
    if backend == 'memory':
        return MemoryStore()
    if backend == 'sheets':
        from stock_sheets import SheetsStore, authenticate, ensure_headers

        gs = config.get('google_sheets', {})
        client = authenticate(gs.get('credentials_file'), gs.get('token_file'))
        sheets = {
            'items_sheet': gs.get('items_sheet', 'Items'),
            'history_sheet': gs.get('history_sheet', 'History'),
        }
        ensure_headers(client, gs['spreadsheet_id'], **sheets)
        return SheetsStore(client, gs['spreadsheet_id'], **sheets)
    raise ValueError(f'Unknown store backend: {backend!r}')


# ============================================================
# Stock list export
# ============================================================

_DEFAULT_EMOJI = {
    'batata': '\U0001f954',
    'abóbora': '\U0001f383',
    'brócolis': '\U0001f966',
    'arroz': '\U0001f35a',
    'risoto': '\U0001f35d',
    'milho': '\U0001f33d',
    'picadinho': '\U0001f356',
    'tropical': '\U0001f334',
    'panqueca': '\U0001f95e',
    'waffle': '\U0001f9c7',
    'pão': '\U0001f35e',
    'macarrão': '\U0001f35d',
}

DEFAULT_ITEM_EMOJI = '\U0001f37d\ufe0f'


def emoji_for_item(name, config=None):
    """First configured keyword contained in *name* wins."""
    emoji = (config or {}).get('emoji', _DEFAULT_EMOJI)
    name_lower = name.lower()
    for keyword, symbol in emoji.items():
        if keyword.lower() in name_lower:
            return symbol
    return DEFAULT_ITEM_EMOJI


def format_stock_list(items, config=None, today=None):
    """Render items as a shareable message.

    The result parses back into the same names and quantities (for names
    without digits and quantities above zero).
    """
    config = config or {}
    if today is None:
        today = date.today()
    ui = UIStrings(config)

    lines = [
        ui.s('export_greeting', date=today.strftime('%d/%m')),
        '',
        ui.s('export_header'),
        '',
    ]
    for item in items:
        lines.append(f'- {item.name}: {item.quantity} {emoji_for_item(item.name, config)}')
    return '\n'.join(lines)


def format_date(d):
    if d is None:
        return ''
    return d.strftime('%d/%m/%Y %H:%M')


# ============================================================
# Clipboard export
# ============================================================

_CLIPBOARD_COMMANDS = [
    # WSL: clip.exe mangles Unicode, PowerShell does not
    ['powershell.exe', '-NoProfile', '-NonInteractive', '-Command',
     '$input | Set-Clipboard'],
    ['xclip', '-selection', 'clipboard'],
    ['pbcopy'],
]


def copy_to_clipboard(text):
    """Copy text to the system clipboard. Returns True on success."""
    data = text.encode('utf-8')
    for cmd in _CLIPBOARD_COMMANDS:
        if not shutil.which(cmd[0]):
            continue
        try:
            subprocess.run(cmd, input=data, check=True)
            return True
        except (subprocess.CalledProcessError, OSError):
            continue
    return False
