"""Tests for search requests."""

import json

import pytest

from magpie.errors import InvalidKeywordError
from magpie.search import (
    SearchMode,
    SearchRequest,
    card_to_dict,
    parse_requests,
    search,
    select_sets,
    suggest_names,
    truncate,
)

from conftest import make_card


class TestParseRequests:
    """Test finding requests in a message."""

    def test_plain(self):
        assert parse_requests("what does [stoat] do?") == [SearchRequest(term="stoat")]

    def test_several_requests(self):
        requests = parse_requests("compare [stoat] with cti[mantis]")
        assert [r.term for r in requests] == ["stoat", "mantis"]
        assert requests[1].set_codes == ("cti",)

    def test_multiple_set_codes(self):
        [request] = parse_requests("COM|cti[stoat]")
        assert request.set_codes == ("com", "cti")

    def test_modifiers(self):
        [request] = parse_requests("q*[rarity:rare]")
        assert request.query
        assert request.all_sets
        assert not request.debug

    def test_modifiers_with_set_code(self):
        [request] = parse_requests("dcti[wolf]")
        assert request.debug
        assert request.set_codes == ("cti",)

    def test_term_is_stripped(self):
        assert parse_requests("[  stoat ]")[0].term == "stoat"

    def test_no_requests(self):
        assert parse_requests("just talking about stoats") == []

    def test_mode(self):
        assert SearchRequest(term="stoat").mode is SearchMode.FUZZY
        assert SearchRequest(term="a>2", query=True).mode is SearchMode.QUERY
        assert SearchRequest(term="rarity:rare").mode is SearchMode.QUERY


class TestSelectSets:
    def test_named_sets(self, sample_sets):
        request = SearchRequest(term="x", set_codes=("cti",))
        assert [str(s.code) for s in select_sets(request, sample_sets)] == ["cti"]

    def test_unknown_code_falls_back_to_default(self, sample_sets):
        request = SearchRequest(term="x", set_codes=("xyz",))
        assert [str(s.code) for s in select_sets(request, sample_sets)] == ["com"]

    def test_all_sets(self, sample_sets):
        request = SearchRequest(term="x", set_codes=("cti",), all_sets=True)
        assert len(select_sets(request, sample_sets)) == 2

    def test_no_default_loaded(self, cti_set):
        request = SearchRequest(term="x")
        assert select_sets(request, {"cti": cti_set}) == []


class TestTruncate:
    """Test result limits."""

    def test_under_limits(self):
        cards = [make_card("Stoat")] * 3
        kept, truncated = truncate(cards)
        assert len(kept) == 3
        assert not truncated

    def test_exactly_at_card_limit(self):
        kept, truncated = truncate([make_card("Stoat")] * 50)
        assert len(kept) == 50
        assert not truncated

    def test_card_limit(self):
        kept, truncated = truncate([make_card("Stoat")] * 60)
        assert len(kept) == 50
        assert truncated

    def test_character_limit(self):
        """Each card counts its name plus two separator characters."""
        kept, truncated = truncate([make_card("Stoat")] * 5, max_results=10, max_chars=20)
        assert len(kept) == 2
        assert truncated


class TestSuggestNames:
    """Test near-miss names for failed lookups."""

    def test_name_below_match_threshold_is_suggested(self, com_set):
        """Too far for a match, close enough for a suggestion."""
        [result] = search("[stoatxxxxxx]", {"com": com_set})
        assert result.cards == []

        assert suggest_names("stoatxxxxxx", [com_set])[0] == "Stoat"

    def test_names_are_not_repeated_across_sets(self, com_set, cti_set):
        names = suggest_names("stoatxxxxxx", [com_set, cti_set])
        assert names.count("Stoat") == 1

    def test_limit(self, com_set):
        names = suggest_names("e", [com_set], limit=2, threshold=0.01)
        assert len(names) == 2

    def test_nothing_close(self, com_set):
        assert suggest_names("xyzzy", [com_set]) == []


class TestSearch:
    """Test running whole messages."""

    def test_fuzzy_uses_default_set(self, sample_sets):
        [result] = search("[stot]", sample_sets)

        assert result.mode is SearchMode.FUZZY
        assert result.set_codes == ["com"]
        assert [card.name for card in result.cards] == ["Stoat"]
        assert result.ranks == [pytest.approx(0.8)]

    def test_fuzzy_reports_sets_without_match(self, sample_sets):
        [result] = search("com|cti[wolf]", sample_sets)

        assert [card.name for card in result.cards] == ["Wolf"]
        assert result.missing == ["com"]

    def test_query(self, sample_sets):
        [result] = search("[rarity:rare]", sample_sets)

        assert result.mode is SearchMode.QUERY
        assert [card.name for card in result.cards] == ["Ant Queen", "Ouroboros"]
        assert result.total == 2
        assert result.description == "rarity is Rare"

    def test_query_over_all_sets(self, sample_sets):
        [result] = search("q*[a>1]", sample_sets)
        assert [card.name for card in result.cards] == ["Gem Guardian", "Wolf"]

    def test_query_error(self, sample_sets):
        [result] = search("q[stoat]", sample_sets)

        assert isinstance(result.error, InvalidKeywordError)
        data = result.to_dict()
        assert data["term"] == "stoat"
        assert "Invalid keyword" in data["error"]
        assert data["hint"]

    def test_results_in_message_order(self, sample_sets):
        results = search("[wolf] then cti[wolf] then [r:rare]", sample_sets)
        assert [r.mode for r in results] == [
            SearchMode.FUZZY,
            SearchMode.FUZZY,
            SearchMode.QUERY,
        ]
        assert results[0].cards == []
        assert results[1].cards[0].name == "Wolf"


class TestResultDicts:
    """Test JSON conversion."""

    def test_fuzzy_result(self, sample_sets):
        [result] = search("[stoat]", sample_sets)
        data = result.to_dict()

        assert data["mode"] == "fuzzy"
        assert data["missing"] == []
        assert data["cards"][0]["rank"] == 1.0
        json.dumps(data)

    def test_query_result(self, sample_sets):
        [result] = search("[tp:tech]", sample_sets)
        data = result.to_dict()

        assert data["filters"] == "temple is Tech"
        assert data["total"] == 2
        assert not data["truncated"]

    def test_card_to_dict(self, com_set):
        gem = com_set.cards[3]
        data = card_to_dict(gem)

        assert data["name"] == "Gem Guardian"
        assert data["temple"] == ["Magick"]
        assert data["rarity"] == "Uncommon"
        assert data["cost"] == "3 orange, 2 green"
        assert data["sigils"] == ["Airborne"]
        assert "traits" not in data

    def test_card_to_dict_special_attack_and_traits(self, com_set):
        assert card_to_dict(com_set.cards[2])["attack"] == "ant"
        assert card_to_dict(com_set.cards[6])["traits"] == ["conductive"]
        assert card_to_dict(com_set.cards[7])["cost"] == "free"

    def test_raw_card_is_json_serializable(self, com_set):
        data = card_to_dict(com_set.cards[3], raw=True)
        assert data["name"] == "Gem Guardian"
        assert data["costs"]["mox_count"]["orange"] == 3
        json.dumps(data)

    def test_debug_request_returns_raw_record(self, sample_sets):
        [result] = search("d[stoat]", sample_sets)
        card = result.to_dict()["cards"][0]
        assert "extra" in card
