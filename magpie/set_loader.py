"""Build card sets from downloaded source JSON.

Two source formats are supported:

- ``imf``: a single ruleset document with ``ruleset``, ``cards`` and
  ``sigils`` keys.
- ``cti``: two sheet exports, a list of card rows and a list of sigil rows.

Files are read with ijson so a set never has to be held in memory as raw
JSON. Every loader returns a set already upgraded to the shared payload
types.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import ijson

from magpie.models import (
    UNDEFINED_SIGIL,
    UNDEFINED_SIGIL_DESCRIPTION,
    Card,
    CardSet,
    Costs,
    MagpieSet,
    Mox,
    MoxCount,
    NumAttack,
    Rarity,
    SetCode,
    SpAtk,
    SpecialAttack,
    Temple,
    TextAttack,
    Traits,
    TraitsFlag,
    to_magpie_set,
)

logger = logging.getLogger(__name__)

IMF_PORTRAIT_URL = "https://github.com/107zxz/inscr-onln/raw/main/gfx/pixport/{name}.png"
CTI_PORTRAIT_URL = (
    "https://raw.githubusercontent.com/SaxbyMod/NotionAssets/main/Formats/"
    "Custom%20TCG%20Inscryption/Portraits/{name}.png"
)
CTI_SET_NAME = "Custom TCG Inscryption"

IMF_MOX_COLORS = {
    "Orange": Mox.ORANGE,
    "Green": Mox.GREEN,
    "Blue": Mox.BLUE,
}

CTI_RARITIES = {
    "Common": Rarity.COMMON,
    "Common (Joke Card)": Rarity.COMMON,
    "": Rarity.COMMON,
    "Uncommon": Rarity.UNCOMMON,
    "Rare": Rarity.RARE,
    "Talking": Rarity.UNIQUE,
    "Deathcard": Rarity.UNIQUE,
    "Side-Deck": Rarity.SIDE,
}

CTI_TEMPLES = {
    "Beast": Temple.BEAST,
    "Undead": Temple.UNDEAD,
    "Tech": Temple.TECH,
    "Magicks": Temple.MAGICK,
    "Terrain/Extras": Temple(),
}

CTI_MOX_COLORS = {
    "ruby": Mox.ORANGE,
    "emerald": Mox.GREEN,
    "sapphire": Mox.BLUE,
    "prism": Mox.GRAY,
}


class SetLoadError(Exception):
    """Source data could not be turned into a card set."""


class UnknownRarityError(SetLoadError):
    def __init__(self, rarity: str):
        super().__init__(f"Unknown rarity: {rarity!r}")
        self.rarity = rarity


class UnknownTempleError(SetLoadError):
    def __init__(self, temple: str):
        super().__init__(f"Unknown temple: {temple!r}")
        self.temple = temple


class InvalidCostError(SetLoadError):
    def __init__(self, cost: str):
        super().__init__(f"Invalid cost: {cost!r}")
        self.cost = cost


class InvalidSpecialAttackError(SetLoadError):
    def __init__(self, attack: str):
        super().__init__(f"Invalid special attack: {attack!r}")
        self.attack = attack


def _normalize_sigils(names: Iterable[str], known: Mapping[str, str]) -> tuple[str, ...]:
    """Keep sigil order, replacing names missing from ``known``."""
    return tuple(name if name in known else UNDEFINED_SIGIL for name in names if name)


def _with_undefined_sigil(sigils: dict[str, str]) -> dict[str, str]:
    sigils.setdefault(UNDEFINED_SIGIL, UNDEFINED_SIGIL_DESCRIPTION)
    return sigils


def _portrait(template: str, name: str) -> str:
    return template.format(name=name.replace(" ", "%20"))


def _mox_count(mox: Mox, counts: MoxCount) -> MoxCount | None:
    """``counts`` if it differs from one per flagged color, else None."""
    if counts == MoxCount.ones(mox):
        return None
    return counts


# IMF


def imf_card(raw: Mapping[str, Any], code: SetCode, sigils: Mapping[str, str]) -> Card:
    """Convert one IMF card object.

    Raises:
        InvalidSpecialAttackError: If ``atkspecial`` is not a known kind
    """
    name = raw["name"]
    blood = int(raw.get("blood_cost", 0))
    bone = int(raw.get("bone_cost", 0))
    energy = int(raw.get("energy_cost", 0))
    mox_names = list(raw.get("mox_cost", []))

    special = raw.get("atkspecial", "")
    if special:
        try:
            attack = SpecialAttack(SpAtk(special))
        except ValueError as e:
            raise InvalidSpecialAttackError(special) from e
    else:
        attack = NumAttack(int(raw.get("attack", 0)))

    mox = Mox()
    counts = MoxCount()
    for color_name in mox_names:
        color = IMF_MOX_COLORS.get(color_name)
        if color is None:
            raise InvalidCostError(color_name)
        mox |= color
        counts = counts.with_count(color, counts.get(color) + 1)

    costs = None
    if blood > 0 or bone > 0 or energy > 0 or mox_names:
        costs = Costs(
            blood=blood,
            bone=bone,
            energy=energy,
            mox=mox,
            mox_count=_mox_count(mox, counts),
        )

    temple = (
        Temple()
        .set_if(Temple.BEAST, blood != 0)
        .set_if(Temple.UNDEAD, bone != 0)
        .set_if(Temple.TECH, energy != 0)
        .set_if(Temple.MAGICK, bool(mox_names))
    )

    conduit = bool(raw.get("conduit", False))
    banned = bool(raw.get("banned", False))
    nosac = bool(raw.get("nosac", False))
    nohammer = bool(raw.get("nohammer", False))
    traits = None
    if conduit or banned or nosac or nohammer:
        flags = (
            TraitsFlag()
            .set_if(TraitsFlag.CONDUCTIVE, conduit)
            .set_if(TraitsFlag.BAN, banned)
            .set_if(TraitsFlag.TERRAIN, nosac)
            .set_if(TraitsFlag.HARD, nohammer)
        )
        traits = Traits.with_flags(flags)

    related = tuple(
        raw[key] for key in ("evolution", "left_half", "right_half") if raw.get(key)
    )

    return Card(
        set_code=code,
        name=name,
        description=raw.get("description", ""),
        portrait=raw.get("pixport_url") or _portrait(IMF_PORTRAIT_URL, name),
        rarity=Rarity.RARE if raw.get("rare", False) else Rarity.COMMON,
        temple=temple,
        attack=attack,
        health=int(raw.get("health", 0)),
        sigils=_normalize_sigils(raw.get("sigils", []), sigils),
        costs=costs,
        traits=traits,
        related=related,
    )


def load_imf_set(path: Path, code: SetCode) -> MagpieSet:
    """Load an IMF ruleset document from ``path``.

    Raises:
        SetLoadError: If a card holds a value the model cannot represent
        FileNotFoundError: If ``path`` does not exist
    """
    with open(path, "rb") as f:
        sigils = _with_undefined_sigil({name: text for name, text in ijson.kvitems(f, "sigils")})
        f.seek(0)
        name = next(ijson.items(f, "ruleset"), str(code))
        f.seek(0)
        cards = tuple(imf_card(raw, code, sigils) for raw in ijson.items(f, "cards.item"))

    logger.info("Loaded IMF set %s (%s): %d cards, %d sigils", code, name, len(cards), len(sigils))
    return to_magpie_set(CardSet(code=code, name=name, cards=cards, sigils_description=sigils))


# CTI


def parse_cti_cost(text: str) -> Costs | None:
    """Parse sheet cost text such as ``2 Blood, 1 Ruby``.

    Returns None for free cards.

    Raises:
        InvalidCostError: If a part is not ``<count> <kind>``
    """
    if not text or text == "Free":
        return None

    blood = bone = energy = 0
    mox = Mox()
    counts = MoxCount()
    for part in text.lower().replace("bones", "bone").split(","):
        words = part.split()
        if len(words) != 2:
            raise InvalidCostError(text)
        try:
            count = int(words[0])
        except ValueError as e:
            raise InvalidCostError(text) from e

        kind = words[1]
        if kind == "blood":
            blood += count
        elif kind == "bone":
            bone += count
        elif kind == "energy":
            energy += count
        elif kind in CTI_MOX_COLORS:
            color = CTI_MOX_COLORS[kind]
            mox |= color
            counts = counts.with_count(color, counts.get(color) + count)
        else:
            raise InvalidCostError(text)

    return Costs(blood=blood, bone=bone, energy=energy, mox=mox, mox_count=_mox_count(mox, counts))


def _cti_attack(power: str):
    power = power.strip()
    if not power:
        return NumAttack(0)
    try:
        return NumAttack(int(power))
    except ValueError:
        return TextAttack(power)


def _cti_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def cti_card(raw: Mapping[str, str], code: SetCode, sigils: Mapping[str, str]) -> Card:
    """Convert one sheet card row.

    Raises:
        UnknownRarityError: If the rarity column holds an unknown value
        UnknownTempleError: If the temple column holds an unknown value
        InvalidCostError: If the cost column cannot be parsed
    """
    name = raw.get("Internal Name", "")

    rarity_text = raw.get("Rarity", "")
    if rarity_text not in CTI_RARITIES:
        raise UnknownRarityError(rarity_text)

    temple_text = raw.get("Temple", "")
    if temple_text not in CTI_TEMPLES:
        raise UnknownTempleError(temple_text)

    token = raw.get("Token", "")
    related = tuple(t.strip() for t in token.split(",") if t.strip()) if token else ()

    return Card(
        set_code=code,
        name=name,
        description=raw.get("Flavor", ""),
        portrait=_portrait(CTI_PORTRAIT_URL, name),
        rarity=CTI_RARITIES[rarity_text],
        temple=CTI_TEMPLES[temple_text],
        attack=_cti_attack(raw.get("Power", "")),
        health=_cti_int(raw.get("Health", "")),
        sigils=_normalize_sigils(
            (raw.get(f"Sigil {i}", "") for i in range(1, 5)), sigils
        ),
        costs=parse_cti_cost(raw.get("Cost", "")),
        related=related,
    )


def load_cti_set(cards_path: Path, sigils_path: Path, code: SetCode) -> MagpieSet:
    """Load the sheet card rows and sigil rows.

    Raises:
        SetLoadError: If a row holds a value the model cannot represent
        FileNotFoundError: If either path does not exist
    """
    with open(sigils_path, "rb") as f:
        sigils = _with_undefined_sigil(
            {
                row["Name"]: row.get("Description", "").replace("\n", "")
                for row in ijson.items(f, "item")
                if row.get("Name")
            }
        )

    with open(cards_path, "rb") as f:
        cards = tuple(
            cti_card(row, code, sigils)
            for row in ijson.items(f, "item")
            if row.get("Internal Name")
        )

    logger.info("Loaded CTI set %s: %d cards, %d sigils", code, len(cards), len(sigils))
    return to_magpie_set(
        CardSet(code=code, name=CTI_SET_NAME, cards=cards, sigils_description=sigils)
    )


# Format name to loader taking (paths by part, code)
LOADERS: dict[str, Callable[[Mapping[str, Path], SetCode], MagpieSet]] = {
    "imf": lambda paths, code: load_imf_set(paths["cards"], code),
    "cti": lambda paths, code: load_cti_set(paths["cards"], paths["sigils"], code),
}


def load_set(fmt: str, paths: Mapping[str, Path], code: SetCode) -> MagpieSet:
    """Load a set of the given source format from its downloaded parts.

    Raises:
        ValueError: If ``fmt`` is not a known format
        SetLoadError: If the data cannot be represented
    """
    loader = LOADERS.get(fmt)
    if loader is None:
        raise ValueError(f"Unknown set format: {fmt}")
    return loader(paths, code)
