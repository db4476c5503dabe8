"""Tests for loading card sets from source JSON."""

import tempfile
from pathlib import Path

import pytest

from magpie.models import (
    UNDEFINED_SIGIL,
    UNDEFINED_SIGIL_DESCRIPTION,
    CardExtra,
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
from magpie.set_loader import (
    CTI_SET_NAME,
    InvalidCostError,
    InvalidSpecialAttackError,
    UnknownRarityError,
    UnknownTempleError,
    cti_card,
    imf_card,
    load_cti_set,
    load_imf_set,
    load_set,
    parse_cti_cost,
)

from conftest import write_json

COM = SetCode("com")
CTI = SetCode("cti")


def by_name(card_set):
    return {card.name: card for card in card_set.cards}


class TestLoadImfSet:
    """Test loading an IMF ruleset document."""

    def test_set_metadata(self, imf_document):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_json(Path(tmpdir) / "com_cards.json", imf_document)
            card_set = load_imf_set(path, COM)

        assert card_set.code == COM
        assert card_set.name == "Competitive"
        assert [card.name for card in card_set.cards] == [
            "Stoat",
            "Great Kraken",
            "Moleman",
            "Emerald Mox",
        ]

    def test_sigils_include_undefined_entry(self, imf_document):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_json(Path(tmpdir) / "com_cards.json", imf_document)
            card_set = load_imf_set(path, COM)

        assert card_set.sigils_description["Bone King"].startswith("Gives 4 bones")
        assert card_set.sigils_description[UNDEFINED_SIGIL] == UNDEFINED_SIGIL_DESCRIPTION

    def test_cards_are_upgraded(self, imf_document):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_json(Path(tmpdir) / "com_cards.json", imf_document)
            stoat = by_name(load_imf_set(path, COM))["Stoat"]

        assert stoat.extra == CardExtra()
        assert stoat.costs == Costs(blood=1, extra=CostExtra())
        assert stoat.temple == Temple.BEAST
        assert stoat.attack == NumAttack(1)
        assert stoat.health == 2
        assert stoat.description == "A meek little beast."

    def test_missing_ruleset_name_falls_back_to_code(self, imf_document):
        del imf_document["ruleset"]
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_json(Path(tmpdir) / "com_cards.json", imf_document)
            assert load_imf_set(path, COM).name == "com"

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                load_imf_set(Path(tmpdir) / "missing.json", COM)


class TestImfCard:
    """Test conversion of single IMF cards."""

    def test_mox_colors_and_repeats(self, imf_document):
        kraken = imf_card(imf_document["cards"][1], COM, imf_document["sigils"])

        assert kraken.costs.mox == Mox.BLUE | Mox.GREEN
        assert kraken.costs.mox_count == MoxCount(blue=2, green=1)
        assert kraken.temple == Temple.MAGICK
        assert kraken.rarity == Rarity.RARE

    def test_unknown_sigil_is_replaced(self, imf_document):
        kraken = imf_card(imf_document["cards"][1], COM, imf_document["sigils"])
        assert kraken.sigils == ("Airborne", UNDEFINED_SIGIL)

    def test_traits_and_related(self, imf_document):
        sigils = imf_document["sigils"]
        kraken = imf_card(imf_document["cards"][1], COM, sigils)
        moleman = imf_card(imf_document["cards"][2], COM, sigils)

        assert kraken.traits == Traits.with_flags(TraitsFlag.BAN)
        assert kraken.related == ("Kraken Spawn",)
        assert moleman.traits == Traits.with_flags(TraitsFlag.TERRAIN | TraitsFlag.HARD)

    def test_portrait(self, imf_document):
        sigils = imf_document["sigils"]
        kraken = imf_card(imf_document["cards"][1], COM, sigils)
        moleman = imf_card(imf_document["cards"][2], COM, sigils)

        assert kraken.portrait.endswith("/Great%20Kraken.png")
        assert moleman.portrait == "https://example.invalid/moleman.png"

    def test_special_attack(self, imf_document):
        mox = imf_card(imf_document["cards"][3], COM, imf_document["sigils"])

        assert mox.attack == SpecialAttack(SpAtk.GREEN_MOX)
        assert mox.costs == Costs(energy=2)
        assert mox.temple == Temple.TECH
        assert mox.traits == Traits.with_flags(TraitsFlag.CONDUCTIVE)

    def test_free_card(self):
        card = imf_card({"name": "Squirrel", "health": 1}, COM, {})
        assert card.costs is None
        assert card.temple == Temple()
        assert card.traits is None

    def test_invalid_special_attack(self):
        with pytest.raises(InvalidSpecialAttackError):
            imf_card({"name": "Odd", "atkspecial": "sword"}, COM, {})

    def test_invalid_mox_color(self):
        with pytest.raises(InvalidCostError):
            imf_card({"name": "Odd", "mox_cost": ["Purple"]}, COM, {})


class TestParseCtiCost:
    """Test sheet cost text."""

    @pytest.mark.parametrize("text", ["", "Free"])
    def test_free(self, text):
        assert parse_cti_cost(text) is None

    def test_blood_and_bones(self):
        assert parse_cti_cost("2 Blood") == Costs(blood=2)
        assert parse_cti_cost("3 Bones") == Costs(bone=3)

    def test_mox_counts(self):
        costs = parse_cti_cost("2 Ruby, 1 Sapphire")
        assert costs.mox == Mox.ORANGE | Mox.BLUE
        assert costs.mox_count == MoxCount(orange=2, blue=1)

    def test_single_mox_of_each_color_has_no_count(self):
        assert parse_cti_cost("1 Emerald, 1 Prism") == Costs(mox=Mox.GREEN | Mox.GRAY)

    def test_repeated_kind_is_summed(self):
        assert parse_cti_cost("1 Energy, 2 Energy") == Costs(energy=3)

    @pytest.mark.parametrize("text", ["Blood", "two Blood", "2 Gold", "2 Blood 1"])
    def test_invalid(self, text):
        with pytest.raises(InvalidCostError):
            parse_cti_cost(text)


class TestCtiCard:
    """Test conversion of single sheet rows."""

    def test_text_attack_tokens_and_sigils(self, cti_card_rows):
        dragon = cti_card(cti_card_rows[1], CTI, {"Airborne": "Flies."})

        assert dragon.attack == TextAttack("Varies")
        assert dragon.health == 4
        assert dragon.temple == Temple.MAGICK
        assert dragon.rarity == Rarity.RARE
        assert dragon.related == ("Dragon Egg", "Ember")
        assert dragon.sigils == ("Airborne", UNDEFINED_SIGIL)

    def test_side_deck_terrain(self, cti_card_rows):
        rock = cti_card(cti_card_rows[2], CTI, {})

        assert rock.rarity == Rarity.SIDE
        assert rock.temple == Temple()
        assert rock.costs is None
        assert rock.attack == NumAttack(0)
        assert rock.related == ()

    def test_portrait(self, cti_card_rows):
        dragon = cti_card(cti_card_rows[1], CTI, {})
        assert dragon.portrait.endswith("/Portraits/Ruby%20Dragon.png")

    def test_unknown_rarity(self, cti_card_rows):
        row = dict(cti_card_rows[0], Rarity="Mythic")
        with pytest.raises(UnknownRarityError) as exc_info:
            cti_card(row, CTI, {})
        assert exc_info.value.rarity == "Mythic"

    def test_unknown_temple(self, cti_card_rows):
        row = dict(cti_card_rows[0], Temple="Ocean")
        with pytest.raises(UnknownTempleError):
            cti_card(row, CTI, {})

    def test_blank_stats(self, cti_card_rows):
        row = dict(cti_card_rows[0], Power="", Health="?")
        stoat = cti_card(row, CTI, {})
        assert stoat.attack == NumAttack(0)
        assert stoat.health == 0


class TestLoadCtiSet:
    """Test loading the two sheet exports."""

    def test_load(self, cti_card_rows, cti_sigil_rows):
        with tempfile.TemporaryDirectory() as tmpdir:
            cards = write_json(Path(tmpdir) / "cti_cards.json", cti_card_rows)
            sigils = write_json(Path(tmpdir) / "cti_sigils.json", cti_sigil_rows)
            card_set = load_cti_set(cards, sigils, CTI)

        assert card_set.name == CTI_SET_NAME
        assert len(card_set) == 3
        assert card_set.sigil_description("Airborne") == "This card attacksthe opponent directly."
        assert card_set.sigil_description(UNDEFINED_SIGIL) == UNDEFINED_SIGIL_DESCRIPTION
        assert all(card.extra == CardExtra() for card in card_set.cards)

    def test_rows_without_name_are_skipped(self, cti_card_rows, cti_sigil_rows):
        rows = [*cti_card_rows, {"Internal Name": "", "Rarity": "Bogus"}]
        with tempfile.TemporaryDirectory() as tmpdir:
            cards = write_json(Path(tmpdir) / "cti_cards.json", rows)
            sigils = write_json(Path(tmpdir) / "cti_sigils.json", cti_sigil_rows)
            assert len(load_cti_set(cards, sigils, CTI)) == 3


class TestLoadSet:
    def test_dispatches_on_format(self, imf_document):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_json(Path(tmpdir) / "com_cards.json", imf_document)
            card_set = load_set("imf", {"cards": path}, COM)
        assert card_set.name == "Competitive"

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown set format"):
            load_set("xml", {}, COM)
