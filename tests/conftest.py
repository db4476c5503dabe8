"""Shared test fixtures for Magpie."""

import json
from pathlib import Path
from typing import Any

import pytest

from magpie.models import (
    CardExtra,
    CardSet,
    Card,
    CostExtra,
    Costs,
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
)

COM = SetCode("com")
CTI = SetCode("cti")


def make_card(name: str, code: SetCode = COM, **fields: Any) -> Card:
    """Card with the shared payload types and sensible defaults."""
    fields.setdefault("extra", CardExtra())
    costs = fields.get("costs")
    if costs is not None and costs.extra is None:
        fields["costs"] = costs.upgrade(CostExtra())
    return Card(set_code=code, name=name, **fields)


@pytest.fixture
def com_cards() -> list[Card]:
    """Sample competitive cards covering every filterable attribute.

    - Stoat, River Snapper, Ant Queen: blood costs, beast temple
    - Gem Guardian: orange x3 and green x2 mox
    - Ouroboros: bone cost, unique sigil
    - Leapbot, Energy Conduit: energy costs, conductive trait
    - Skeleton, Boulder: free cards, Boulder has terrain and hard traits
    """
    return [
        make_card(
            "Stoat",
            description="A meek little beast.",
            temple=Temple.BEAST,
            attack=NumAttack(1),
            health=2,
            costs=Costs(blood=1),
        ),
        make_card(
            "River Snapper",
            temple=Temple.BEAST,
            attack=NumAttack(1),
            health=6,
            costs=Costs(blood=2),
        ),
        make_card(
            "Ant Queen",
            rarity=Rarity.RARE,
            temple=Temple.BEAST,
            tribes="Insect",
            attack=SpecialAttack(SpAtk.ANT),
            health=3,
            costs=Costs(blood=2),
        ),
        make_card(
            "Gem Guardian",
            rarity=Rarity.UNCOMMON,
            temple=Temple.MAGICK,
            attack=NumAttack(2),
            health=3,
            sigils=("Airborne",),
            costs=Costs(
                mox=Mox.ORANGE | Mox.GREEN,
                mox_count=MoxCount(orange=3, green=2),
            ),
        ),
        make_card(
            "Ouroboros",
            rarity=Rarity.RARE,
            temple=Temple.UNDEAD,
            attack=NumAttack(1),
            health=1,
            sigils=("Unkillable",),
            costs=Costs(bone=2),
        ),
        make_card(
            "Leapbot",
            temple=Temple.TECH,
            attack=NumAttack(0),
            health=2,
            sigils=("Mighty Leap",),
            costs=Costs(energy=1),
        ),
        make_card(
            "Energy Conduit",
            rarity=Rarity.UNCOMMON,
            temple=Temple.TECH,
            attack=NumAttack(0),
            health=3,
            costs=Costs(energy=2),
            traits=Traits.with_flags(TraitsFlag.CONDUCTIVE),
        ),
        make_card(
            "Skeleton",
            rarity=Rarity.SIDE,
            temple=Temple.UNDEAD,
            attack=NumAttack(1),
            health=1,
            sigils=("Brittle",),
        ),
        make_card(
            "Boulder",
            attack=NumAttack(0),
            health=5,
            traits=Traits.with_flags(TraitsFlag.TERRAIN | TraitsFlag.HARD),
        ),
    ]


@pytest.fixture
def cti_cards() -> list[Card]:
    """Sample custom set cards, including a free-text attack and a tribe."""
    return [
        make_card(
            "Stoat",
            CTI,
            temple=Temple.BEAST,
            attack=NumAttack(1),
            health=3,
            costs=Costs(blood=1),
        ),
        make_card(
            "Ruby Dragon",
            CTI,
            rarity=Rarity.RARE,
            temple=Temple.MAGICK,
            tribes="Reptile",
            attack=TextAttack("Varies"),
            health=4,
            costs=Costs(mox=Mox.ORANGE, mox_count=MoxCount(orange=2)),
        ),
        make_card(
            "Wolf",
            CTI,
            temple=Temple.BEAST,
            tribes="Canine",
            attack=NumAttack(3),
            health=2,
            costs=Costs(blood=2),
        ),
    ]


@pytest.fixture
def com_set(com_cards: list[Card]) -> CardSet:
    return CardSet(
        code=COM,
        name="IMF Competitive",
        cards=tuple(com_cards),
        sigils_description={
            "Airborne": "This card attacks the opponent directly.",
            "Unkillable": "When this card dies, a copy is returned to your hand.",
            "Mighty Leap": "This card blocks airborne creatures.",
            "Brittle": "This card dies after attacking.",
        },
    )


@pytest.fixture
def cti_set(cti_cards: list[Card]) -> CardSet:
    return CardSet(
        code=CTI,
        name="Custom TCG Inscryption",
        cards=tuple(cti_cards),
        sigils_description={},
    )


@pytest.fixture
def sample_sets(com_set: CardSet, cti_set: CardSet) -> dict[str, CardSet]:
    return {"com": com_set, "cti": cti_set}


@pytest.fixture
def imf_document() -> dict[str, Any]:
    """A small IMF ruleset document."""
    return {
        "ruleset": "Competitive",
        "sigils": {
            "Airborne": "This card attacks the opponent directly.",
            "Bone King": "Gives 4 bones instead of 1 when it dies.",
        },
        "cards": [
            {
                "name": "Stoat",
                "description": "A meek little beast.",
                "attack": 1,
                "health": 2,
                "blood_cost": 1,
            },
            {
                "name": "Great Kraken",
                "attack": 1,
                "health": 1,
                "sigils": ["Airborne", "Waterborne"],
                "mox_cost": ["Blue", "Blue", "Green"],
                "rare": True,
                "banned": True,
                "evolution": "Kraken Spawn",
            },
            {
                "name": "Moleman",
                "attack": 0,
                "health": 6,
                "bone_cost": 4,
                "nosac": True,
                "nohammer": True,
                "pixport_url": "https://example.invalid/moleman.png",
            },
            {
                "name": "Emerald Mox",
                "attack": 0,
                "health": 1,
                "atkspecial": "green_mox",
                "energy_cost": 2,
                "conduit": True,
            },
        ],
    }


@pytest.fixture
def cti_card_rows() -> list[dict[str, str]]:
    """Rows of the custom set card sheet."""
    return [
        {
            "Internal Name": "Stoat",
            "Flavor": "A meek little beast.",
            "Temple": "Beast",
            "Rarity": "Common",
            "Cost": "1 Blood",
            "Power": "1",
            "Health": "3",
            "Token": "",
            "Sigil 1": "",
            "Sigil 2": "",
            "Sigil 3": "",
            "Sigil 4": "",
        },
        {
            "Internal Name": "Ruby Dragon",
            "Flavor": "",
            "Temple": "Magicks",
            "Rarity": "Rare",
            "Cost": "2 Ruby, 1 Sapphire",
            "Power": "Varies",
            "Health": "4",
            "Token": "Dragon Egg, Ember",
            "Sigil 1": "Airborne",
            "Sigil 2": "Mystery Sigil",
            "Sigil 3": "",
            "Sigil 4": "",
        },
        {
            "Internal Name": "Rock",
            "Flavor": "",
            "Temple": "Terrain/Extras",
            "Rarity": "Side-Deck",
            "Cost": "Free",
            "Power": "0",
            "Health": "5",
            "Token": "",
            "Sigil 1": "",
            "Sigil 2": "",
            "Sigil 3": "",
            "Sigil 4": "",
        },
    ]


@pytest.fixture
def cti_sigil_rows() -> list[dict[str, str]]:
    return [
        {"Name": "Airborne", "Description": "This card attacks\nthe opponent directly."},
    ]


def write_json(path: Path, data: Any) -> Path:
    with open(path, "w") as f:
        json.dump(data, f)
    return path
