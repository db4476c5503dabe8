"""Search requests over loaded sets.

A message may hold several requests of the form
``<modifiers><set codes>[<term>]``, for example ``[stoat]``,
``cti[mantis]``, ``com|cti[stoat]`` or ``q*[rarity:rare attack>2]``.

Modifiers:
    q   query mode (the term is a query instead of a card name)
    *   search every loaded set
    d   debug, return the raw card record

A term containing ``:`` is always a query. Without a usable set code the
request goes to ``DEFAULT_SET``.
"""

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from magpie.errors import QueryError
from magpie.filters import Query, evaluate, format_costs
from magpie.fuzzy import FUZZY_THRESHOLD, fuzzy_best, fuzzy_rank
from magpie.models import Card, CardSet, NumAttack
from magpie.query_compiler import compile_query

logger = logging.getLogger(__name__)

DEFAULT_SET = "com"

# Query results are cut once either limit is crossed
MAX_RESULTS = 50
MAX_RESULT_CHARS = 4000

# Looser cut-off for "did you mean" names after a failed lookup
SUGGESTION_THRESHOLD = 0.3
MAX_SUGGESTIONS = 5

SEARCH_PATTERN = re.compile(r"([q*d]*)(\w{3}(?:\|\w{3})*)?\[(.*?)\]")


class SearchMode(Enum):
    FUZZY = "fuzzy"
    QUERY = "query"


@dataclass(frozen=True)
class SearchRequest:
    """One ``<modifiers><set codes>[<term>]`` request."""

    term: str
    set_codes: tuple[str, ...] = ()
    query: bool = False
    all_sets: bool = False
    debug: bool = False

    @property
    def mode(self) -> SearchMode:
        if self.query or ":" in self.term:
            return SearchMode.QUERY
        return SearchMode.FUZZY


@dataclass
class SearchResult:
    """Outcome of one request.

    In fuzzy mode ``cards`` holds the best card of every selected set and
    ``missing`` the codes of the sets without a match. In query mode
    ``cards`` holds the (possibly truncated) matches.
    """

    request: SearchRequest
    mode: SearchMode
    set_codes: list[str]
    cards: list[Card] = field(default_factory=list)
    ranks: list[float] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    total: int = 0
    truncated: bool = False
    description: str = ""
    error: QueryError | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        if self.error is not None:
            return {
                "term": self.request.term,
                "error": self.error.message,
                "hint": self.error.hint,
            }

        result: dict[str, Any] = {
            "term": self.request.term,
            "mode": self.mode.value,
            "sets": self.set_codes,
        }
        if self.mode is SearchMode.QUERY:
            result["filters"] = self.description
            result["total"] = self.total
            result["truncated"] = self.truncated
        else:
            result["missing"] = self.missing
        result["cards"] = [card_to_dict(card, raw=self.request.debug) for card in self.cards]
        if self.ranks:
            for entry, rank in zip(result["cards"], self.ranks):
                entry["rank"] = round(rank, 3)
        return result


def parse_requests(message: str) -> list[SearchRequest]:
    """Find every search request in a message."""
    requests = []
    for match in SEARCH_PATTERN.finditer(message):
        modifiers, codes, term = match.group(1) or "", match.group(2) or "", match.group(3)
        requests.append(
            SearchRequest(
                term=term.strip(),
                set_codes=tuple(code.lower() for code in codes.split("|") if code),
                query="q" in modifiers,
                all_sets="*" in modifiers,
                debug="d" in modifiers,
            )
        )
    return requests


def select_sets(
    request: SearchRequest, sets: Mapping[str, CardSet], default: str = DEFAULT_SET
) -> list[CardSet]:
    """Sets a request targets. Unknown codes are skipped."""
    if request.all_sets:
        return list(sets.values())

    selected = [sets[code] for code in request.set_codes if code in sets]
    if not selected and default in sets:
        selected = [sets[default]]
    return selected


def truncate(
    cards: Sequence[Card],
    max_results: int = MAX_RESULTS,
    max_chars: int = MAX_RESULT_CHARS,
) -> tuple[list[Card], bool]:
    """Cut a card list once it has too many cards or too many name characters.

    Returns:
        (kept cards, whether anything was cut)
    """
    kept: list[Card] = []
    chars = 0
    for card in cards:
        chars += len(card.name) + 2
        if len(kept) >= max_results or chars > max_chars:
            return kept, True
        kept.append(card)
    return kept, False


def fuzzy_search(
    request: SearchRequest, card_sets: Sequence[CardSet], threshold: float = FUZZY_THRESHOLD
) -> SearchResult:
    """Best card by name in every selected set."""
    result = SearchResult(
        request=request,
        mode=SearchMode.FUZZY,
        set_codes=[str(s.code) for s in card_sets],
    )
    for card_set in card_sets:
        best = fuzzy_best(request.term, card_set.cards, threshold, key=lambda card: card.name)
        if best is None:
            result.missing.append(str(card_set.code))
            continue
        result.cards.append(best.item)
        result.ranks.append(best.rank)
    result.total = len(result.cards)
    return result


def suggest_names(
    term: str,
    card_sets: Sequence[CardSet],
    limit: int = MAX_SUGGESTIONS,
    threshold: float = SUGGESTION_THRESHOLD,
) -> list[str]:
    """Closest card names across the selected sets, best first, without duplicates."""
    cards = [card for card_set in card_sets for card in card_set.cards]
    names: list[str] = []
    for ranked in fuzzy_rank(term, cards, threshold, key=lambda card: card.name):
        if ranked.item.name not in names:
            names.append(ranked.item.name)
        if len(names) == limit:
            break
    return names


def query_search(
    request: SearchRequest,
    card_sets: Sequence[CardSet],
    max_results: int = MAX_RESULTS,
    max_chars: int = MAX_RESULT_CHARS,
) -> SearchResult:
    """Compile the term as a query and evaluate it over the selected sets."""
    result = SearchResult(
        request=request,
        mode=SearchMode.QUERY,
        set_codes=[str(s.code) for s in card_sets],
    )
    try:
        filters = compile_query(request.term)
    except QueryError as e:
        logger.debug("Rejected query %r: %s", request.term, e)
        result.error = e
        return result

    query: Query = evaluate(card_sets, filters)
    result.description = query.describe()
    result.total = len(query)
    result.cards, result.truncated = truncate(query.cards, max_results, max_chars)
    return result


def run_request(
    request: SearchRequest, sets: Mapping[str, CardSet], default: str = DEFAULT_SET
) -> SearchResult:
    card_sets = select_sets(request, sets, default)
    if request.mode is SearchMode.QUERY:
        return query_search(request, card_sets)
    return fuzzy_search(request, card_sets)


def search(message: str, sets: Mapping[str, CardSet], default: str = DEFAULT_SET) -> list[SearchResult]:
    """Run every request in a message.

    Args:
        message: Text holding one or more ``[...]`` requests
        sets: Loaded sets by code
        default: Set used when a request names no known set

    Returns:
        One result per request, in message order
    """
    results = []
    for request in parse_requests(message):
        result = run_request(request, sets, default)
        logger.info(
            "Search %r (%s) over %s: %d card(s)",
            request.term,
            result.mode.value,
            ",".join(result.set_codes) or "no sets",
            len(result.cards),
        )
        results.append(result)
    return results


def card_to_dict(card: Card, raw: bool = False) -> dict[str, Any]:
    """Convert a card to a JSON friendly dictionary.

    With ``raw`` every field of the record is included as stored.
    """
    if raw:
        return _plain(dataclasses.asdict(card))

    result: dict[str, Any] = {
        "set": str(card.set_code),
        "name": card.name,
        "rarity": str(card.rarity),
        "temple": [label.title() for label in card.temple.labels()],
        "attack": card.attack.value if isinstance(card.attack, NumAttack) else str(card.attack),
        "health": card.health,
        "cost": format_costs(card.costs) if card.costs else "free",
        "sigils": list(card.sigils),
    }
    if card.description:
        result["description"] = card.description
    if card.tribes:
        result["tribes"] = card.tribes
    if card.traits is not None:
        traits = [label.lower() for label in card.traits.flags.labels()]
        traits.extend(card.traits.strings or ())
        result["traits"] = traits
    if card.related:
        result["related"] = list(card.related)
    if card.portrait:
        result["portrait"] = card.portrait
    return result


def _plain(value: Any) -> Any:
    """Make ``dataclasses.asdict`` output JSON serializable."""
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
