"""Compile parsed keywords into card filters.

Keyword values are raw text from the query; this module maps them to the
model's enums and flags, e.g. ``rarity:r`` to ``RarityFilter(Rarity.RARE)``
and ``cost:3r2g`` to a ``CostsFilter`` with orange and green mox.
"""

import logging
import re
from dataclasses import dataclass
from typing import ClassVar

from magpie.errors import CompileError
from magpie.filters import (
    AttackFilter,
    CostsFilter,
    DescriptionFilter,
    ExtraFilter,
    Filter,
    HealthFilter,
    NameFilter,
    NotFilter,
    OrFilter,
    Predicate,
    RarityFilter,
    SigilFilter,
    SpAtkFilter,
    TempleFilter,
    TraitsFilter,
    TribeFilter,
)
from magpie.flags import Flags
from magpie.fuzzy import FUZZY_THRESHOLD, similarity
from magpie.models import Costs, Mox, MoxCount, Rarity, SpAtk, Temple, Traits, TraitsFlag
from magpie.query_lexer import TokenKind
from magpie.query_parser import (
    CompareKeyword,
    FieldKeyword,
    Keyword,
    NotKeyword,
    OrKeyword,
    parse_query,
)

logger = logging.getLogger(__name__)


class CostType(Flags):
    """Kinds of cost a card can have."""

    WIDTH = 8
    LABELS = (
        ("BLOOD", 1),
        ("BONE", 1 << 1),
        ("ENERGY", 1 << 2),
        ("MOX", 1 << 3),
    )

    BLOOD: ClassVar["CostType"]
    BONE: ClassVar["CostType"]
    ENERGY: ClassVar["CostType"]
    MOX: ClassVar["CostType"]


@dataclass(frozen=True)
class HasCostType:
    """Card has at least one of the selected kinds of cost."""

    kinds: CostType

    def to_fn(self) -> Predicate:
        kinds = self.kinds

        def matches(card) -> bool:
            costs = card.costs
            if costs is None:
                return False
            return (
                (CostType.BLOOD in kinds and costs.blood != 0)
                or (CostType.BONE in kinds and costs.bone != 0)
                or (CostType.ENERGY in kinds and costs.energy != 0)
                or (CostType.MOX in kinds and not costs.mox.is_empty())
            )

        return matches

    def describe(self) -> str:
        names = " or ".join(label.lower() for label in self.kinds.labels())
        return f"has {names} cost"


@dataclass(frozen=True)
class FuzzyName:
    """Card name is close to ``text`` or contains it."""

    text: str
    threshold: float = FUZZY_THRESHOLD

    def to_fn(self) -> Predicate:
        text, threshold = self.text, self.threshold
        needle = text.lower()
        return lambda card: (
            similarity(card.name, text, threshold) > 0 or needle in card.name.lower()
        )

    def describe(self) -> str:
        return f'name is like "{self.text}"'


RARITY_MAP = {
    "side": Rarity.SIDE,
    "s": Rarity.SIDE,
    "common": Rarity.COMMON,
    "c": Rarity.COMMON,
    "uncommon": Rarity.UNCOMMON,
    "u": Rarity.UNCOMMON,
    "rare": Rarity.RARE,
    "r": Rarity.RARE,
    "unique": Rarity.UNIQUE,
    "n": Rarity.UNIQUE,
}

TEMPLE_MAP = {
    "beast": Temple.BEAST,
    "b": Temple.BEAST,
    "undead": Temple.UNDEAD,
    "u": Temple.UNDEAD,
    "technology": Temple.TECH,
    "tech": Temple.TECH,
    "t": Temple.TECH,
    "magick": Temple.MAGICK,
    "m": Temple.MAGICK,
    "fool": Temple.FOOL,
    "f": Temple.FOOL,
    "artistry": Temple.ARTISTRY,
    "a": Temple.ARTISTRY,
}

SPATK_MAP = {
    "mox": SpAtk.MOX,
    "green": SpAtk.GREEN_MOX,
    "mirror": SpAtk.MIRROR,
    "ant": SpAtk.ANT,
    "bone": SpAtk.BONE,
    "bell": SpAtk.BELL,
    "card": SpAtk.CARD,
}

COST_TYPE_MAP = {
    "b": CostType.BLOOD,
    "o": CostType.BONE,
    "e": CostType.ENERGY,
    "m": CostType.MOX,
}

TRAIT_MAP = {
    "conductive": TraitsFlag.CONDUCTIVE,
    "ban": TraitsFlag.BAN,
    "banned": TraitsFlag.BAN,
    "terrain": TraitsFlag.TERRAIN,
    "unsaccable": TraitsFlag.TERRAIN,
    "hard": TraitsFlag.HARD,
    "unhammerable": TraitsFlag.HARD,
}

MOX_LETTERS = {
    "r": Mox.ORANGE,
    "g": Mox.GREEN,
    "u": Mox.BLUE,
    "y": Mox.GRAY,
}

COST_PATTERN = re.compile(r"(?:(?:-?\d+)?[a-z])+")
COST_PART_PATTERN = re.compile(r"(-?\d+)?([a-z])")


def parse_costs(text: str) -> Costs:
    """Parse cost shorthand such as ``2b``, ``4o`` or ``3r2g``.

    Each part is an optional signed count (default 1) followed by a letter:
    ``b`` blood, ``o`` bone, ``e`` energy and ``r``/``g``/``u``/``y`` for
    orange, green, blue and gray mox.

    Raises:
        CompileError: If the text is malformed or uses an unknown letter
    """
    text = text.lower().replace(" ", "")
    if not COST_PATTERN.fullmatch(text):
        raise CompileError(
            "cost", text, hint="Use counts and letters like 2b, 4o, 3e or 3r2g"
        )

    blood = bone = energy = 0
    mox = Mox()
    counts = MoxCount()
    for match in COST_PART_PATTERN.finditer(text):
        count = int(match.group(1)) if match.group(1) else 1
        letter = match.group(2)
        if letter == "b":
            blood = count
        elif letter == "o":
            bone = count
        elif letter == "e":
            energy = count
        elif letter in MOX_LETTERS:
            color = MOX_LETTERS[letter]
            mox |= color
            counts = counts.with_count(color, count)
        else:
            raise CompileError(
                "cost",
                text,
                hint=f"Unknown cost letter '{letter}', expected one of b o e r g u y",
            )

    mox_count = None
    if any(counts.get(color) != 1 for color in mox):
        mox_count = counts
    return Costs(blood=blood, bone=bone, energy=energy, mox=mox, mox_count=mox_count)


def _lookup(table: dict, field: str, text: str):
    value = table.get(text.lower())
    if value is None:
        options = ", ".join(sorted(table))
        raise CompileError(field, text, hint=f"Expected one of: {options}")
    return value


def _compile_field(keyword: FieldKeyword) -> Filter:
    field, text = keyword.field, keyword.value

    if field is TokenKind.NAME:
        return NameFilter(text)
    if field is TokenKind.DESC:
        return DescriptionFilter(text)
    if field is TokenKind.RARITY:
        return RarityFilter(_lookup(RARITY_MAP, "rarity", text))
    if field is TokenKind.TEMPLE:
        return TempleFilter(_lookup(TEMPLE_MAP, "temple", text))
    if field is TokenKind.TRIBE:
        return TribeFilter(text)
    if field is TokenKind.SIGIL:
        return SigilFilter(text)
    if field is TokenKind.SPATK:
        return SpAtkFilter(_lookup(SPATK_MAP, "special attack", text))
    if field is TokenKind.COSTS:
        return CostsFilter(parse_costs(text))
    if field is TokenKind.COST_TYPE:
        kinds = CostType()
        for letter in text.lower():
            kinds |= _lookup(COST_TYPE_MAP, "cost type", letter)
        if kinds.is_empty():
            raise CompileError("cost type", text, hint="Use letters b, o, e and m")
        return ExtraFilter(HasCostType(kinds))
    if field is TokenKind.TRAIT:
        flag = TRAIT_MAP.get(text.lower())
        if flag is not None:
            return TraitsFilter(Traits.with_flags(flag))
        return TraitsFilter(Traits.with_strings(text.split(",")))

    raise CompileError(field.value, text)


def keyword_to_filter(keyword: Keyword) -> Filter:
    """Convert one keyword node, recursing through ``or`` and ``!``.

    Raises:
        CompileError: If a value is not valid for its field
    """
    if isinstance(keyword, FieldKeyword):
        return _compile_field(keyword)
    if isinstance(keyword, CompareKeyword):
        if keyword.field is TokenKind.ATTACK:
            return AttackFilter(keyword.order, keyword.value)
        return HealthFilter(keyword.order, keyword.value)
    if isinstance(keyword, OrKeyword):
        return OrFilter(keyword_to_filter(keyword.left), keyword_to_filter(keyword.right))
    if isinstance(keyword, NotKeyword):
        return NotFilter(keyword_to_filter(keyword.inner))
    raise TypeError(f"Unknown keyword node: {keyword!r}")


def compile_query(query: str) -> list[Filter]:
    """Compile query text into filters to be ANDed together.

    Raises:
        QueryError: The first lexing, parsing or compile error encountered
    """
    filters = [keyword_to_filter(keyword) for keyword in parse_query(query)]
    logger.debug("Compiled query %r into %d filter(s)", query, len(filters))
    return filters
