"""Google Sheets store: items and quantity history kept in two worksheets.

  Items:    id | name | quantity | order
  History:  id | item_id | quantity | date (ISO 8601)

Row 1 of each worksheet is a header. Every gspread failure surfaces as
StoreError. The client is passed in explicitly so tests can mock it.
"""

import logging
from contextlib import contextmanager
from datetime import datetime

import gspread

from stock_store import Item, Observation, StockStore, StoreError

log = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/spreadsheets']

ITEMS_HEADER = ['id', 'name', 'quantity', 'order']
HISTORY_HEADER = ['id', 'item_id', 'quantity', 'date']


# ============================================================
# Authentication
# ============================================================

def authenticate(credentials_file=None, token_file=None):
    """Return an authenticated gspread Client.

    With *credentials_file*, runs gspread's OAuth flow and caches the token
    in *token_file* (default token.json). Without it, uses Application
    Default Credentials, e.g. after:
        gcloud auth application-default login \\
            --scopes=https://www.googleapis.com/auth/spreadsheets
    """
    if credentials_file:
        return gspread.oauth(
            credentials_filename=credentials_file,
            authorized_user_filename=token_file or 'token.json',
            flow=_manual_browser_flow,
        )

    import google.auth
    from google.auth.transport.requests import Request
    creds, _ = google.auth.default(scopes=SCOPES)
    creds.refresh(Request())
    return gspread.authorize(creds)


def _manual_browser_flow(client_config, scopes, port=0):
    """Print the consent URL instead of opening a browser (WSL, SSH)."""
    from google_auth_oauthlib.flow import InstalledAppFlow
    flow = InstalledAppFlow.from_client_config(client_config, scopes)
    flow.run_local_server(port=port, open_browser=False)
    return flow.credentials


# ============================================================
# Row parsing
# ============================================================

def _parse_item_row(row):
    if len(row) < 3 or not row[0].strip():
        return None
    try:
        order = int(row[3]) if len(row) > 3 and row[3].strip() else 0
        return Item(id=int(row[0]), name=row[1].strip(),
                    quantity=int(row[2]), order=order)
    except ValueError:
        log.warning('Skipping malformed item row %r', row)
        return None


def _parse_history_row(row):
    if len(row) < 4 or not row[0].strip():
        return None
    try:
        return Observation(id=int(row[0]), item_id=int(row[1]),
                           quantity=int(row[2]),
                           date=datetime.fromisoformat(row[3].strip()))
    except ValueError:
        log.warning('Skipping malformed history row %r', row)
        return None


def _read_records(ws, parser):
    """Return [(sheet_row_number, record)] for every parseable data row."""
    records = []
    for offset, row in enumerate(ws.get_values('A2:D')):
        record = parser(row)
        if record is not None:
            records.append((offset + 2, record))
    return records


@contextmanager
def _sheet_errors(action):
    try:
        yield
    except gspread.exceptions.GSpreadException as exc:
        raise StoreError(f'{action} failed: {exc}') from exc


# ============================================================
# Store
# ============================================================

class SheetsStore(StockStore):
    def __init__(self, client, spreadsheet_id, items_sheet='Items',
                 history_sheet='History'):
        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self.items_sheet = items_sheet
        self.history_sheet = history_sheet
        self._spreadsheet = None

    def _worksheet(self, name):
        if self._spreadsheet is None:
            self._spreadsheet = self.client.open_by_key(self.spreadsheet_id)
        return self._spreadsheet.worksheet(name)

    def _items_ws(self):
        return self._worksheet(self.items_sheet)

    def _history_ws(self):
        return self._worksheet(self.history_sheet)

    def _item_row(self, item_id):
        for row_number, item in _read_records(self._items_ws(), _parse_item_row):
            if item.id == item_id:
                return row_number
        raise StoreError(f'No item with id {item_id}')

    @staticmethod
    def _delete_rows(ws, row_numbers):
        # bottom-up so earlier row numbers stay valid
        for row_number in sorted(row_numbers, reverse=True):
            ws.delete_rows(row_number)

    # -- items --

    def list_items(self):
        with _sheet_errors('Reading items'):
            records = _read_records(self._items_ws(), _parse_item_row)
        return sorted((item for _, item in records), key=lambda i: (i.order, i.id))

    def create_item(self, name, quantity):
        name = name.strip()
        if quantity < 0:
            raise StoreError(f'Quantity must be >= 0, got {quantity}')
        with _sheet_errors(f'Creating {name!r}'):
            ws = self._items_ws()
            items = [item for _, item in _read_records(ws, _parse_item_row)]
            if any(item.name == name for item in items):
                raise StoreError(f'Item {name!r} already exists')
            item_id = max((i.id for i in items), default=0) + 1
            order = max((i.order for i in items), default=-1) + 1
            ws.append_row([item_id, name, quantity, order], value_input_option='RAW')
        log.debug('Created item %s %r in sheet %s', item_id, name, self.items_sheet)
        return item_id

    def set_quantity(self, item_id, quantity):
        if quantity < 0:
            raise StoreError(f'Quantity must be >= 0, got {quantity}')
        with _sheet_errors(f'Updating item {item_id}'):
            row_number = self._item_row(item_id)
            self._items_ws().update_cell(row_number, 3, quantity)

    def delete_item(self, item_id):
        with _sheet_errors(f'Deleting item {item_id}'):
            row_number = self._item_row(item_id)
            history_ws = self._history_ws()
            attached = [n for n, obs in _read_records(history_ws, _parse_history_row)
                        if obs.item_id == item_id]
            self._delete_rows(history_ws, attached)
            self._items_ws().delete_rows(row_number)

    # -- history --

    def append_observation(self, item_id, quantity, date):
        with _sheet_errors(f'Recording history for item {item_id}'):
            self._item_row(item_id)
            ws = self._history_ws()
            existing = _read_records(ws, _parse_history_row)
            obs_id = max((obs.id for _, obs in existing), default=0) + 1
            ws.append_row([obs_id, item_id, quantity, date.isoformat(timespec='seconds')],
                          value_input_option='RAW')
        return obs_id

    def list_observations(self, item_id):
        with _sheet_errors(f'Reading history for item {item_id}'):
            records = _read_records(self._history_ws(), _parse_history_row)
        history = [obs for _, obs in records if obs.item_id == item_id]
        return sorted(history, key=lambda o: o.date, reverse=True)

    def delete_observation(self, observation_id):
        with _sheet_errors(f'Deleting observation {observation_id}'):
            ws = self._history_ws()
            for row_number, obs in _read_records(ws, _parse_history_row):
                if obs.id == observation_id:
                    ws.delete_rows(row_number)
                    return
        raise StoreError(f'No observation with id {observation_id}')

    def reparent_observations(self, from_item_id, to_item_id):
        with _sheet_errors(f'Moving history of item {from_item_id}'):
            self._item_row(to_item_id)
            ws = self._history_ws()
            for row_number, obs in _read_records(ws, _parse_history_row):
                if obs.item_id == from_item_id:
                    ws.update_cell(row_number, 2, to_item_id)


def ensure_headers(client, spreadsheet_id, items_sheet='Items', history_sheet='History'):
    """Write the header rows if a worksheet is still empty."""
    spreadsheet = client.open_by_key(spreadsheet_id)
    for name, header in ((items_sheet, ITEMS_HEADER), (history_sheet, HISTORY_HEADER)):
        ws = spreadsheet.worksheet(name)
        if not ws.get_values('A1:D1'):
            ws.append_row(header, value_input_option='RAW')
