"""Card filters and the query builder.

A filter is a frozen dataclass describing one predicate over a card.
``to_fn`` compiles it into a plain ``Card -> bool`` function that holds no
mutable state, so compiled filters can be shared between concurrent queries.
Filters added to a ``QueryBuilder`` are ANDed together; ``OrFilter`` and
``NotFilter`` express richer logic inside a single filter, and
``ExtraFilter`` wraps any caller supplied object with a ``to_fn`` method.
"""

import operator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Protocol, Sequence, Union, runtime_checkable

from magpie.models import (
    Card,
    CardSet,
    Costs,
    NumAttack,
    Rarity,
    SpAtk,
    SpecialAttack,
    Temple,
    TextAttack,
    Traits,
)

Predicate = Callable[[Card], bool]


class QueryOrder(Enum):
    """Comparison used by numeric filters."""

    GREATER = ">"
    GREATER_EQUAL = ">="
    EQUAL = "="
    LESS_EQUAL = "<="
    LESS = "<"

    def compare(self, left: int, right: int) -> bool:
        """Evaluate ``left <op> right``."""
        return _COMPARATORS[self](left, right)


_COMPARATORS: dict[QueryOrder, Callable[[int, int], bool]] = {
    QueryOrder.GREATER: operator.gt,
    QueryOrder.GREATER_EQUAL: operator.ge,
    QueryOrder.EQUAL: operator.eq,
    QueryOrder.LESS_EQUAL: operator.le,
    QueryOrder.LESS: operator.lt,
}


@runtime_checkable
class ToPredicate(Protocol):
    """Anything that compiles to a card predicate."""

    def to_fn(self) -> Predicate: ...


@dataclass(frozen=True)
class NameFilter:
    """Card name contains ``text`` (case-insensitive)."""

    text: str

    def to_fn(self) -> Predicate:
        needle = self.text.lower()
        return lambda card: needle in card.name.lower()

    def describe(self) -> str:
        return f'name contains "{self.text}"'


@dataclass(frozen=True)
class DescriptionFilter:
    """Card description contains ``text`` (case-insensitive)."""

    text: str

    def to_fn(self) -> Predicate:
        needle = self.text.lower()
        return lambda card: needle in card.description.lower()

    def describe(self) -> str:
        return f'description contains "{self.text}"'


@dataclass(frozen=True)
class RarityFilter:
    rarity: Rarity

    def to_fn(self) -> Predicate:
        rarity = self.rarity
        return lambda card: card.rarity == rarity

    def describe(self) -> str:
        return f"rarity is {self.rarity}"


@dataclass(frozen=True)
class TempleFilter:
    """Card temple flags are exactly ``temple``."""

    temple: Temple

    def to_fn(self) -> Predicate:
        temple = self.temple
        return lambda card: card.temple == temple

    def describe(self) -> str:
        names = ", ".join(label.title() for label in self.temple.labels()) or "none"
        return f"temple is {names}"


@dataclass(frozen=True)
class TribeFilter:
    """Card tribe contains ``tribe``; ``None`` matches tribeless cards."""

    tribe: str | None

    def to_fn(self) -> Predicate:
        if self.tribe is None:
            return lambda card: card.tribes is None
        needle = self.tribe.lower()
        return lambda card: card.tribes is not None and needle in card.tribes.lower()

    def describe(self) -> str:
        if self.tribe is None:
            return "has no tribe"
        return f'tribe contains "{self.tribe}"'


@dataclass(frozen=True)
class AttackFilter:
    """Numeric attack compared to ``value``. Never matches special or text attacks."""

    order: QueryOrder
    value: int

    def to_fn(self) -> Predicate:
        order, value = self.order, self.value
        return lambda card: isinstance(card.attack, NumAttack) and order.compare(
            card.attack.value, value
        )

    def describe(self) -> str:
        return f"attack {self.order.value} {self.value}"


@dataclass(frozen=True)
class HealthFilter:
    order: QueryOrder
    value: int

    def to_fn(self) -> Predicate:
        order, value = self.order, self.value
        return lambda card: order.compare(card.health, value)

    def describe(self) -> str:
        return f"health {self.order.value} {self.value}"


@dataclass(frozen=True)
class SigilFilter:
    """Card has a sigil named ``sigil`` (case-insensitive)."""

    sigil: str

    def to_fn(self) -> Predicate:
        wanted = self.sigil.lower()
        return lambda card: any(s.lower() == wanted for s in card.sigils)

    def describe(self) -> str:
        return f'has sigil "{self.sigil}"'


@dataclass(frozen=True)
class SpAtkFilter:
    kind: SpAtk

    def to_fn(self) -> Predicate:
        kind = self.kind
        return lambda card: isinstance(card.attack, SpecialAttack) and card.attack.kind == kind

    def describe(self) -> str:
        return f"special attack is {self.kind.value}"


@dataclass(frozen=True)
class StrAtkFilter:
    text: str

    def to_fn(self) -> Predicate:
        text = self.text
        return lambda card: isinstance(card.attack, TextAttack) and card.attack.text == text

    def describe(self) -> str:
        return f'attack is "{self.text}"'


def _costs_match(actual: Costs, wanted: Costs) -> bool:
    # ``wanted`` is already normalized
    actual = actual.normalized()
    if wanted.extra is not None and actual.extra != wanted.extra:
        return False
    return (
        actual.blood == wanted.blood
        and actual.bone == wanted.bone
        and actual.energy == wanted.energy
        and actual.mox == wanted.mox
        and actual.mox_count == wanted.mox_count
    )


@dataclass(frozen=True)
class CostsFilter:
    """Card costs equal ``costs``; ``None`` matches free cards.

    Costs are compared after normalization, and the extra payload only takes
    part when the wanted costs carry one.
    """

    costs: Costs | None

    def to_fn(self) -> Predicate:
        if self.costs is None:
            return lambda card: card.costs is None
        wanted = self.costs.normalized()
        return lambda card: card.costs is not None and _costs_match(card.costs, wanted)

    def describe(self) -> str:
        if self.costs is None:
            return "is free"
        return f"costs {format_costs(self.costs)}"


@dataclass(frozen=True)
class TraitsFilter:
    """Card traits equal ``traits``; ``None`` matches traitless cards."""

    traits: Traits | None

    def to_fn(self) -> Predicate:
        traits = self.traits
        return lambda card: card.traits == traits

    def describe(self) -> str:
        if self.traits is None:
            return "has no traits"
        parts = [label.lower() for label in self.traits.flags.labels()]
        parts.extend(self.traits.strings or ())
        return f"has traits {', '.join(parts)}"


@dataclass(frozen=True)
class OrFilter:
    left: "Filter"
    right: "Filter"

    def to_fn(self) -> Predicate:
        left, right = self.left.to_fn(), self.right.to_fn()
        return lambda card: left(card) or right(card)

    def describe(self) -> str:
        return f"({describe_filter(self.left)} or {describe_filter(self.right)})"


@dataclass(frozen=True)
class NotFilter:
    inner: "Filter"

    def to_fn(self) -> Predicate:
        inner = self.inner.to_fn()
        return lambda card: not inner(card)

    def describe(self) -> str:
        return f"not {describe_filter(self.inner)}"


@dataclass(frozen=True)
class ExtraFilter:
    """Caller supplied predicate, e.g. fuzzy name or cost kind matching."""

    inner: ToPredicate

    def to_fn(self) -> Predicate:
        return self.inner.to_fn()

    def describe(self) -> str:
        return describe_filter(self.inner)


Filter = Union[
    NameFilter,
    DescriptionFilter,
    RarityFilter,
    TempleFilter,
    TribeFilter,
    AttackFilter,
    HealthFilter,
    SigilFilter,
    SpAtkFilter,
    StrAtkFilter,
    CostsFilter,
    TraitsFilter,
    OrFilter,
    NotFilter,
    ExtraFilter,
]


def describe_filter(f: Any) -> str:
    """Human-readable text for a filter."""
    describe = getattr(f, "describe", None)
    if callable(describe):
        return describe()
    return repr(f)


def format_costs(costs: Costs) -> str:
    """Compact text for a cost, e.g. ``2 blood, 3 orange``."""
    parts = []
    for amount, label in ((costs.blood, "blood"), (costs.bone, "bone"), (costs.energy, "energy")):
        if amount:
            parts.append(f"{amount} {label}")
    counts = costs.effective_mox_count()
    for color in costs.mox:
        label = color.labels()[0].lower()
        parts.append(f"{counts.get(color)} {label}")
    return ", ".join(parts) or "nothing"


@dataclass
class Query:
    """Result of a query: the matching cards and the filters that produced them."""

    cards: list[Card]
    filters: list[Filter] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cards)

    def describe(self) -> str:
        return ", ".join(describe_filter(f) for f in self.filters) or "all cards"

    def __str__(self) -> str:
        return "\n".join(card.name for card in self.cards)


class QueryBuilder:
    """Accumulates filters over a list of sets and evaluates them.

    Example:
        query = QueryBuilder(sets).add_filter(RarityFilter(Rarity.RARE)).query()
    """

    def __init__(self, sets: Sequence[CardSet]):
        self.sets = list(sets)
        self._compiled: list[tuple[Filter, Predicate]] = []

    @property
    def filters(self) -> list[Filter]:
        return [f for f, _ in self._compiled]

    def add_filter(self, f: Filter) -> "QueryBuilder":
        """Add a filter, compiling it immediately. Returns self for chaining."""
        self._compiled.append((f, f.to_fn()))
        return self

    def add_filters(self, filters: Iterable[Filter]) -> "QueryBuilder":
        for f in filters:
            self.add_filter(f)
        return self

    def query(self) -> Query:
        """Return every card, across every set, matching all filters."""
        predicates = [predicate for _, predicate in self._compiled]
        cards = [
            card
            for card_set in self.sets
            for card in card_set.cards
            if all(predicate(card) for predicate in predicates)
        ]
        return Query(cards=cards, filters=self.filters)


def evaluate(sets: Sequence[CardSet], filters: Iterable[Filter]) -> Query:
    """Functional form of ``QueryBuilder(sets).add_filters(filters).query()``."""
    return QueryBuilder(sets).add_filters(filters).query()
