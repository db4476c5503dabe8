"""Tests for bit flag sets."""

from typing import ClassVar

import pytest

from magpie.flags import Flags
from magpie.models import Mox, Temple


class Color(Flags):
    WIDTH = 4
    LABELS = (("RED", 1), ("BLUE", 1 << 1), ("GREEN", 1 << 2))

    RED: ClassVar["Color"]
    BLUE: ClassVar["Color"]
    GREEN: ClassVar["Color"]


class TestFlagsConstruction:
    """Test building flag sets."""

    def test_labels_become_class_attributes(self):
        """Each label should be a single-bit instance of the class."""
        assert isinstance(Color.RED, Color)
        assert Color.BLUE.value == 2

    def test_empty_and_all(self):
        assert Color.empty().value == 0
        assert Color.all().value == 0b111

    def test_from_labels_is_case_insensitive(self):
        assert Color.from_labels("red", "GREEN") == Color.RED | Color.GREEN

    def test_from_labels_rejects_unknown(self):
        with pytest.raises(KeyError):
            Color.from_labels("purple")

    def test_value_must_fit_width(self):
        """Values wider than WIDTH bits should be rejected."""
        with pytest.raises(ValueError):
            Color(1 << 4)
        with pytest.raises(ValueError):
            Color(-1)

    def test_value_must_be_int(self):
        with pytest.raises(TypeError):
            Color("1")


class TestFlagsOperations:
    """Test union, containment and iteration."""

    def test_union(self):
        both = Color.RED | Color.BLUE
        assert both.value == 0b11
        assert Color.RED in both
        assert Color.GREEN not in both

    def test_union_is_commutative_and_idempotent(self):
        assert Color.RED | Color.BLUE == Color.BLUE | Color.RED
        assert Color.RED | Color.RED == Color.RED

    def test_contains_requires_every_bit(self):
        both = Color.RED | Color.BLUE
        assert both.contains(Color.RED | Color.BLUE)
        assert not Color.RED.contains(both)

    def test_empty_is_contained_in_everything(self):
        assert Color.empty() in Color.RED

    def test_set_if(self):
        assert Color.empty().set_if(Color.RED, True) == Color.RED
        assert Color.empty().set_if(Color.RED, False) == Color.empty()

    def test_iteration_yields_single_bits_lowest_first(self):
        flags = Color.GREEN | Color.RED
        assert list(flags) == [Color.RED, Color.GREEN]

    def test_truthiness(self):
        assert not Color.empty()
        assert Color.BLUE
        assert Color.empty().is_empty()

    def test_mixing_flag_types_is_an_error(self):
        with pytest.raises(TypeError):
            Temple.BEAST | Mox.ORANGE

    def test_flag_sets_are_hashable_values(self):
        assert {Color.RED, Color(1)} == {Color.RED}


class TestFlagsDisplay:
    """Test labels and repr."""

    def test_labels(self):
        assert (Temple.BEAST | Temple.TECH).labels() == ["BEAST", "TECH"]

    def test_unlabelled_bits_show_as_hex(self):
        assert Color(1 << 3).labels() == ["0x8"]

    def test_repr(self):
        assert repr(Temple.BEAST | Temple.UNDEAD) == "Temple(BEAST|UNDEAD)"
        assert repr(Temple()) == "Temple(EMPTY)"
