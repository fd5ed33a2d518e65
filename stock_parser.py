"""Stock list import parser.

Parses pasted stock lists (chat messages, typed notes) into an import batch:
an optional observation date for the whole message plus (name, quantity)
lines in message order.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime

log = logging.getLogger(__name__)

DEFAULT_OBSERVATION_HOUR = 20


@dataclass(frozen=True)
class ImportLine:
    original_name: str
    quantity: int


@dataclass
class ImportBatch:
    observation_date: datetime = None
    lines: list = field(default_factory=list)


# ============================================================
# Public API
# ============================================================

def parse(text, today=None, hour=DEFAULT_OBSERVATION_HOUR):
    """Parse *text* into an ImportBatch.

    Malformed lines are dropped, never raised.
    """
    if today is None:
        today = date.today()

    text = _strip_metadata(text)
    lines = text.split('\n')
    return ImportBatch(
        observation_date=parse_import_date(lines, today, hour),
        lines=parse_import_lines(lines),
    )


# ============================================================
# Preprocessing
# ============================================================

_METADATA_PATTERNS = [
    re.compile(r'<This message was edited>', re.IGNORECASE),
    re.compile(r'<Media omitted>', re.IGNORECASE),
]


def _strip_metadata(text):
    for pattern in _METADATA_PATTERNS:
        text = pattern.sub('', text)
    return text.strip()


# ============================================================
# Date extraction
# ============================================================

# Tried in order against each line; first valid match wins.
_DATE_PATTERNS = [
    ('dd/mm/yyyy', re.compile(r'(?<!\d)(\d{2})/(\d{2})/(\d{4})(?!\d)')),
    ('dd/mm/yy', re.compile(r'(?<!\d)(\d{2})/(\d{2})/(\d{2})(?!\d)')),
    ('dd/mm', re.compile(r'(?<!\d)(\d{2})/(\d{2})(?!\d)')),
    ('d/m', re.compile(r'(?<!\d)(\d{1,2})/(\d{1,2})(?!\d)')),
]


def parse_import_date(lines, today=None, hour=DEFAULT_OBSERVATION_HOUR):
    """Return the first date found in *lines* at *hour* o'clock, or None."""
    if today is None:
        today = date.today()

    for line in lines:
        for fmt, pattern in _DATE_PATTERNS:
            m = pattern.search(line)
            if not m:
                continue
            day, month = int(m.group(1)), int(m.group(2))
            if fmt == 'dd/mm/yyyy':
                year = int(m.group(3))
            elif fmt == 'dd/mm/yy':
                year = _expand_two_digit_year(int(m.group(3)), today)
            else:
                year = _infer_year(day, month, today)
            try:
                return datetime(year, month, day, hour)
            except ValueError:
                log.debug('Ignoring invalid %s date %r', fmt, m.group(0))
    return None


def _infer_year(day, month, today):
    """Most recent past occurrence of day/month relative to *today*."""
    if (month, day) > (today.month, today.day):
        return today.year - 1
    return today.year


def _expand_two_digit_year(yy, today):
    year = today.year - today.year % 100 + yy
    if year > today.year:
        year -= 100
    return year


# ============================================================
# Line extraction
# ============================================================

_INTEGER = re.compile(r'[0-9]+')
_SEPARATORS = re.compile(r'[-/:_,;]')
_EMOJI = re.compile(
    '['
    '\U0001F300-\U0001F5FF'
    '\U0001F600-\U0001F64F'
    '\U0001F680-\U0001F6FF'
    '\U0001F700-\U0001F77F'
    '\U0001F780-\U0001F7FF'
    '\U0001F800-\U0001F8FF'
    '\U0001F900-\U0001F9FF'
    '\U0001FA00-\U0001FAFF'
    '\u2600-\u26FF'
    '\u2700-\u27BF'
    '\uFE0F'
    ']'
)


def parse_import_lines(lines):
    """Extract ImportLines from raw lines, preserving order."""
    result = []
    for line in lines:
        if not line.strip():
            continue
        parsed = _parse_line(line)
        if parsed is None:
            log.debug('Dropped import line %r', line)
            continue
        result.append(parsed)
    return result


def _parse_line(line):
    numbers = _INTEGER.findall(line)
    # No number: not an item. Several: likely a date or noise.
    if len(numbers) != 1:
        return None

    quantity = int(numbers[0])
    if quantity <= 0:
        return None

    name = line.replace(numbers[0], '', 1)
    name = _SEPARATORS.sub(' ', name)
    name = _EMOJI.sub('', name)
    name = re.sub(r'\s+', ' ', name).strip()
    if not name:
        return None

    return ImportLine(original_name=name, quantity=quantity)
