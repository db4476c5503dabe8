"""Card and set records.

Records are frozen dataclasses: the set loaders build them once and every
consumer afterwards shares them read-only. Game variants attach their own
fields through the ``extra`` payloads of ``Card`` and ``Costs`` and convert
between payload types with ``upgrade`` rather than by subclassing.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, Iterator, Mapping, TypeVar, Union

from magpie.flags import Flags

UNDEFINED_SIGIL = "UNDEFINED SIGIL"
UNDEFINED_SIGIL_DESCRIPTION = "THIS SIGIL IS NOT DEFINED BY THE SET"

ExtraT = TypeVar("ExtraT")
CostExtraT = TypeVar("CostExtraT")
NewExtraT = TypeVar("NewExtraT")
NewCostExtraT = TypeVar("NewCostExtraT")


@dataclass(frozen=True)
class SetCode:
    """A 3 ASCII character set code, e.g. ``com`` or ``cti``."""

    code: str

    def __post_init__(self) -> None:
        if isinstance(self.code, bytes) and self.is_valid(self.code):
            object.__setattr__(self, "code", self.code.decode("ascii"))
        if not self.is_valid(self.code):
            raise ValueError(f"Set code must be exactly 3 ASCII bytes, got {self.code!r}")

    @staticmethod
    def is_valid(code: str | bytes) -> bool:
        data = code if isinstance(code, bytes) else code.encode("utf-8")
        return len(data) == 3 and data.isascii()

    @classmethod
    def new(cls, code: str | bytes) -> "SetCode | None":
        """Create a set code, or return None if ``code`` is not 3 ASCII bytes."""
        if not cls.is_valid(code):
            return None
        return cls(code)

    def as_bytes(self) -> bytes:
        return self.code.encode("ascii")

    def __str__(self) -> str:
        return self.code


class Rarity(Enum):
    """Rarity or tier of a card."""

    SIDE = "side"
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    UNIQUE = "unique"

    def __str__(self) -> str:
        return self.value.title()


class Temple(Flags):
    """Temple, scrybe or archetype a card belongs to."""

    LABELS = (
        ("BEAST", 1),
        ("UNDEAD", 1 << 1),
        ("TECH", 1 << 2),
        ("MAGICK", 1 << 3),
        ("FOOL", 1 << 4),
        ("ARTISTRY", 1 << 5),
    )

    BEAST: ClassVar["Temple"]
    UNDEAD: ClassVar["Temple"]
    TECH: ClassVar["Temple"]
    MAGICK: ClassVar["Temple"]
    FOOL: ClassVar["Temple"]
    ARTISTRY: ClassVar["Temple"]


class Mox(Flags):
    """Mox colors a card costs."""

    LABELS = (
        ("ORANGE", 1),
        ("GREEN", 1 << 1),
        ("BLUE", 1 << 2),
        ("GRAY", 1 << 3),
    )

    ORANGE: ClassVar["Mox"]
    GREEN: ClassVar["Mox"]
    BLUE: ClassVar["Mox"]
    GRAY: ClassVar["Mox"]


class TraitsFlag(Flags):
    """Common traits stored as flags."""

    LABELS = (
        ("CONDUCTIVE", 1),
        ("BAN", 1 << 1),
        ("TERRAIN", 1 << 2),
        ("HARD", 1 << 3),
    )

    CONDUCTIVE: ClassVar["TraitsFlag"]
    BAN: ClassVar["TraitsFlag"]
    TERRAIN: ClassVar["TraitsFlag"]
    HARD: ClassVar["TraitsFlag"]


class SpAtk(Enum):
    """Special (variable) attack of a card."""

    MOX = "mox"
    GREEN_MOX = "green_mox"
    MIRROR = "mirror"
    ANT = "ant"
    BONE = "bone"
    BELL = "bell"
    CARD = "card"


@dataclass(frozen=True)
class NumAttack:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class SpecialAttack:
    kind: SpAtk

    def __str__(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class TextAttack:
    """Attack written as free text, for formats that do not encode it."""

    text: str

    def __str__(self) -> str:
        return self.text


Attack = Union[NumAttack, SpecialAttack, TextAttack]


@dataclass(frozen=True)
class MoxCount:
    """Per-color mox count, used when a color costs more than one."""

    orange: int = 0
    green: int = 0
    blue: int = 0
    gray: int = 0

    _FIELDS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("ORANGE", "orange"),
        ("GREEN", "green"),
        ("BLUE", "blue"),
        ("GRAY", "gray"),
    )

    @classmethod
    def _field_for(cls, color: Mox) -> str:
        for label, name in cls._FIELDS:
            if color == getattr(Mox, label):
                return name
        raise ValueError(f"Not a single mox color: {color!r}")

    @classmethod
    def ones(cls, mox: Mox) -> "MoxCount":
        """Count of one for every color in ``mox``."""
        return cls(**{cls._field_for(color): 1 for color in mox})

    def get(self, color: Mox) -> int:
        return getattr(self, self._field_for(color))

    def with_count(self, color: Mox, count: int) -> "MoxCount":
        return dataclasses.replace(self, **{self._field_for(color): count})


@dataclass(frozen=True)
class Costs(Generic[CostExtraT]):
    """Everything a card costs to play.

    ``mox_count`` is only present when some flagged color costs more than
    one. ``extra`` holds format specific components (links, gold, ...).
    """

    blood: int = 0
    bone: int = 0
    energy: int = 0
    mox: Mox = Mox()
    mox_count: MoxCount | None = None
    extra: CostExtraT | None = None

    def effective_mox_count(self) -> MoxCount:
        """Per-color count, filling in the implied one per flagged color."""
        if self.mox_count is not None:
            return self.mox_count
        return MoxCount.ones(self.mox)

    def normalized(self) -> "Costs[CostExtraT]":
        """Drop a ``mox_count`` that only restates the implied counts."""
        if self.mox_count is not None and self.mox_count == MoxCount.ones(self.mox):
            return dataclasses.replace(self, mox_count=None)
        return self

    def upgrade(self, extra: NewCostExtraT) -> "Costs[NewCostExtraT]":
        return dataclasses.replace(self, extra=extra)


@dataclass(frozen=True)
class Traits:
    """Free-text traits plus flags for the common ones."""

    strings: tuple[str, ...] | None = None
    flags: TraitsFlag = TraitsFlag()

    @classmethod
    def with_flags(cls, flags: TraitsFlag) -> "Traits":
        return cls(strings=None, flags=flags)

    @classmethod
    def with_strings(cls, strings: list[str] | tuple[str, ...]) -> "Traits":
        return cls(strings=tuple(strings), flags=TraitsFlag())


@dataclass(frozen=True)
class Card(Generic[ExtraT, CostExtraT]):
    """A single card record."""

    set_code: SetCode
    name: str
    description: str = ""
    portrait: str = ""
    rarity: Rarity = Rarity.COMMON
    temple: Temple = Temple()
    tribes: str | None = None
    attack: Attack = NumAttack(0)
    health: int = 0
    sigils: tuple[str, ...] = ()
    costs: Costs[CostExtraT] | None = None
    traits: Traits | None = None
    related: tuple[str, ...] = ()
    extra: ExtraT | None = None

    def upgrade(
        self,
        extra: NewExtraT,
        cost_extra: Callable[[Costs[CostExtraT]], NewCostExtraT] | None = None,
    ) -> "Card[NewExtraT, NewCostExtraT]":
        """Convert this card to another payload type.

        Args:
            extra: The new card payload
            cost_extra: Maps the old costs to the new cost payload. When
                omitted the cost payload is reset to None.
        """
        costs = self.costs
        if costs is not None:
            costs = costs.upgrade(cost_extra(costs) if cost_extra else None)
        return dataclasses.replace(self, extra=extra, costs=costs)


@dataclass(frozen=True)
class CardSet(Generic[ExtraT, CostExtraT]):
    """A named collection of cards with its sigil description table."""

    code: SetCode
    name: str
    cards: tuple[Card[ExtraT, CostExtraT], ...] = ()
    sigils_description: Mapping[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self) -> Iterator[Card[ExtraT, CostExtraT]]:
        return iter(self.cards)

    def sigil_description(self, sigil: str) -> str:
        return self.sigils_description.get(sigil, UNDEFINED_SIGIL_DESCRIPTION)

    def upgrade(
        self,
        extra: Callable[[Card[ExtraT, CostExtraT]], NewExtraT],
        cost_extra: Callable[[Costs[CostExtraT]], NewCostExtraT] | None = None,
    ) -> "CardSet[NewExtraT, NewCostExtraT]":
        """Convert every card of the set with ``Card.upgrade``."""
        cards = tuple(card.upgrade(extra(card), cost_extra) for card in self.cards)
        return dataclasses.replace(self, cards=cards)


@dataclass(frozen=True)
class CardExtra:
    """Card payload shared by every loaded format."""

    artist: str = ""


@dataclass(frozen=True)
class CostExtra:
    """Cost payload shared by every loaded format."""

    shattered_count: MoxCount | None = None
    max_energy: int = 0
    link: int = 0
    gold: int = 0


MagpieCard = Card[CardExtra, CostExtra]
MagpieSet = CardSet[CardExtra, CostExtra]


def to_magpie_set(card_set: CardSet[Any, Any]) -> MagpieSet:
    """Upgrade a freshly loaded set to the shared payload types."""
    return card_set.upgrade(
        lambda card: card.extra if isinstance(card.extra, CardExtra) else CardExtra(),
        lambda costs: costs.extra if isinstance(costs.extra, CostExtra) else CostExtra(),
    )
