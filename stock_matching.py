"""Item name matching.

Normalizes display names into comparison keys, scores name similarity by
edit distance, and ranks catalog items as candidates for an imported name.
"""

import re
import unicodedata


# ============================================================
# Normalization
# ============================================================

_NON_ALNUM = re.compile(r'[^a-z0-9]')


def normalize_name(name):
    """Canonical comparison key: lowercase, no accents, only [a-z0-9].

    >>> normalize_name('Leite (Integral)')
    'leiteintegral'
    """
    decomposed = unicodedata.normalize('NFD', name.lower())
    stripped = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub('', stripped)


# ============================================================
# Similarity
# ============================================================

def levenshtein(a, b):
    """Unit-cost edit distance (insert, delete, substitute)."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,              # deletion
                current[j - 1] + 1,           # insertion
                previous[j - 1] + (ca != cb), # substitution
            ))
        previous = current
    return previous[-1]


def similarity(a, b):
    """Similarity in [0, 1] between two names after normalization."""
    s1 = normalize_name(a)
    s2 = normalize_name(b)

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    longest = max(len(s1), len(s2))
    return (longest - levenshtein(s1, s2)) / longest


# ============================================================
# Candidate matching
# ============================================================

def find_exact_match(name, catalog):
    """Return the first catalog item whose name equals *name* ignoring case."""
    target = name.lower()
    for item in catalog:
        if item.name.lower() == target:
            return item
    return None


def score_candidates(target_name, catalog, threshold):
    """Return [(item, score)] with score >= threshold, best first.

    Equal scores keep catalog order (sorted() is stable).
    """
    scored = [(item, similarity(target_name, item.name)) for item in catalog]
    kept = [(item, score) for item, score in scored if score >= threshold]
    return sorted(kept, key=lambda pair: pair[1], reverse=True)


def find_candidates(target_name, catalog, threshold=0.8):
    """Catalog items similar to *target_name*, ranked by similarity.

    An exact (case-insensitive) name match is returned alone, regardless
    of how other items score.
    """
    exact = find_exact_match(target_name, catalog)
    if exact is not None:
        return [exact]
    return [item for item, _ in score_candidates(target_name, catalog, threshold)]


# ============================================================
# Catalog ordering
# ============================================================

SORT_ORDERS = ('custom', 'alphabetical', 'quantity_asc', 'quantity_desc')


def sort_items(items, order='custom', query=None, threshold=0.5):
    """Return items in display order.

    A non-blank *query* switches to search mode: only items at or above
    *threshold* are kept, most similar first. Otherwise *order* is one of
    SORT_ORDERS.
    """
    if query and query.strip():
        return [item for item, _ in score_candidates(query, items, threshold)]

    if order == 'alphabetical':
        return sorted(items, key=lambda i: normalize_name(i.name))
    if order == 'quantity_asc':
        return sorted(items, key=lambda i: i.quantity)
    if order == 'quantity_desc':
        return sorted(items, key=lambda i: i.quantity, reverse=True)
    if order == 'custom':
        return sorted(items, key=lambda i: i.order)
    raise ValueError(f'Unknown sort order: {order!r}')
