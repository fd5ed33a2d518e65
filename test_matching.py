"""Tests for item name matching: normalization, similarity, candidates, ordering."""

import pytest

from stock_matching import (
    normalize_name, levenshtein, similarity,
    find_exact_match, find_candidates, score_candidates, sort_items,
)
from stock_store import Item


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def catalog():
    return [
        Item(id=1, name='Batata', quantity=5, order=2),
        Item(id=2, name='Batata Doce', quantity=3, order=0),
        Item(id=3, name='Arroz', quantity=10, order=1),
        Item(id=4, name='Feijão Preto', quantity=0, order=3),
    ]


# ============================================================
# Normalization
# ============================================================

class TestNormalizeName:
    def test_lowercases(self):
        assert normalize_name('BATATA') == 'batata'

    def test_strips_accents(self):
        assert normalize_name('maçã') == 'maca'
        assert normalize_name('café') == 'cafe'

    def test_removes_punctuation_and_spaces(self):
        assert normalize_name('café & açúcar') == 'cafeacucar'
        assert normalize_name('leite (integral)') == 'leiteintegral'

    def test_removes_emoji(self):
        assert normalize_name('Batata \U0001f954') == 'batata'

    def test_keeps_digits(self):
        assert normalize_name('Coca 2L') == 'coca2l'

    def test_empty(self):
        assert normalize_name('') == ''

    @pytest.mark.parametrize('name', ['Maçã Verde!', 'Pão de Queijo', '  x  ', ''])
    def test_idempotent(self, name):
        assert normalize_name(normalize_name(name)) == normalize_name(name)


# ============================================================
# Similarity
# ============================================================

class TestLevenshtein:
    def test_identical(self):
        assert levenshtein('batata', 'batata') == 0

    def test_empty(self):
        assert levenshtein('', 'abc') == 3
        assert levenshtein('abc', '') == 3

    def test_classic(self):
        assert levenshtein('kitten', 'sitting') == 3

    def test_no_transposition_discount(self):
        assert levenshtein('ab', 'ba') == 2


class TestSimilarity:
    @pytest.mark.parametrize('s', ['Batata', 'maçã', 'x', ''])
    def test_self_similarity_is_one(self, s):
        assert similarity(s, s) == 1.0

    def test_one_empty_is_zero(self):
        assert similarity('Batata', '') == 0.0
        assert similarity('', 'Batata') == 0.0

    def test_both_empty_is_one(self):
        assert similarity('', '') == 1.0

    def test_punctuation_only_counts_as_empty(self):
        assert similarity('!!!', 'arroz') == 0.0

    def test_symmetric(self):
        assert similarity('Batata', 'Batata Doce') == similarity('Batata Doce', 'Batata')

    def test_partial_credit(self):
        # batata vs batatadoce: 4 insertions over length 10
        assert similarity('Batata', 'Batata Doce') == pytest.approx(0.6)

    def test_case_and_accent_insensitive(self):
        assert similarity('FEIJÃO', 'feijao') == 1.0

    def test_completely_different(self):
        assert similarity('abc', 'xyz') == 0.0


# ============================================================
# Candidate matching
# ============================================================

class TestFindExactMatch:
    def test_case_insensitive(self, catalog):
        assert find_exact_match('batata', catalog).id == 1

    def test_accents_matter(self, catalog):
        assert find_exact_match('Feijao Preto', catalog) is None

    def test_first_match_wins(self):
        items = [Item(id=7, name='Arroz', quantity=1), Item(id=8, name='ARROZ', quantity=2)]
        assert find_exact_match('arroz', items).id == 7


class TestFindCandidates:
    def test_exact_match_is_sole_candidate(self, catalog):
        assert [i.id for i in find_candidates('BATATA', catalog, 0.5)] == [1]

    def test_similar_above_threshold(self, catalog):
        only_doce = [c for c in catalog if c.id != 1]
        assert [i.id for i in find_candidates('Batata', only_doce, 0.5)] == [2]

    def test_default_threshold_is_strict(self, catalog):
        only_doce = [c for c in catalog if c.id != 1]
        assert find_candidates('Batata', only_doce) == []

    def test_sorted_descending_and_above_threshold(self, catalog):
        scored = score_candidates('Batatas', catalog, 0.3)
        scores = [score for _, score in scored]
        assert scores == sorted(scores, reverse=True)
        assert all(score >= 0.3 for score in scores)
        assert scored[0][0].id == 1

    def test_ties_keep_catalog_order(self):
        items = [
            Item(id=1, name='abcx', quantity=0),
            Item(id=2, name='abcy', quantity=0),
        ]
        assert [i.id for i in find_candidates('abcz', items, 0.5)] == [1, 2]

    def test_nothing_similar(self, catalog):
        assert find_candidates('Chocolate', catalog, 0.5) == []

    def test_empty_catalog(self):
        assert find_candidates('Batata', [], 0.5) == []


# ============================================================
# Ordering and search
# ============================================================

class TestSortItems:
    def test_custom_uses_order_field(self, catalog):
        assert [i.id for i in sort_items(catalog)] == [2, 3, 1, 4]

    def test_alphabetical_ignores_accents(self, catalog):
        names = [i.name for i in sort_items(catalog, 'alphabetical')]
        assert names == ['Arroz', 'Batata', 'Batata Doce', 'Feijão Preto']

    def test_quantity_orders(self, catalog):
        assert [i.quantity for i in sort_items(catalog, 'quantity_asc')] == [0, 3, 5, 10]
        assert [i.quantity for i in sort_items(catalog, 'quantity_desc')] == [10, 5, 3, 0]

    def test_query_filters_by_similarity(self, catalog):
        found = sort_items(catalog, 'alphabetical', query='batat', threshold=0.5)
        assert [i.id for i in found] == [1, 2]

    def test_blank_query_ignored(self, catalog):
        assert len(sort_items(catalog, query='   ')) == 4

    def test_unknown_order(self, catalog):
        with pytest.raises(ValueError):
            sort_items(catalog, 'random')

    def test_does_not_mutate_input(self, catalog):
        before = list(catalog)
        sort_items(catalog, 'quantity_desc')
        assert catalog == before
