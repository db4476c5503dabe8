"""Fixed-width bit flag sets.

A flag set is an immutable value wrapping an unsigned integer. Subclasses
declare their named bits in ``LABELS`` as ``(label, bit)`` pairs; each label
becomes a class attribute holding the single-bit value, so adding a flag is a
one-line data change:

    class Temple(Flags):
        LABELS = (("BEAST", 1), ("UNDEAD", 1 << 1))

    Temple.BEAST | Temple.UNDEAD
"""

from dataclasses import dataclass
from typing import ClassVar, Iterator, TypeVar

F = TypeVar("F", bound="Flags")


@dataclass(frozen=True)
class Flags:
    """Base class for named bit flag sets."""

    value: int = 0

    WIDTH: ClassVar[int] = 16
    LABELS: ClassVar[tuple[tuple[str, int], ...]] = ()

    def __init_subclass__(cls, **kwargs) -> None:
        super().__init_subclass__(**kwargs)
        for label, bit in cls.LABELS:
            setattr(cls, label, cls(bit))

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError(f"{type(self).__name__} value must be an int, got {self.value!r}")
        if not 0 <= self.value < (1 << self.WIDTH):
            raise ValueError(
                f"{type(self).__name__} value {self.value} does not fit in {self.WIDTH} bits"
            )

    @classmethod
    def empty(cls: type[F]) -> F:
        """Flag set with no bit on."""
        return cls(0)

    @classmethod
    def all(cls: type[F]) -> F:
        """Flag set with every labelled bit on."""
        value = 0
        for _, bit in cls.LABELS:
            value |= bit
        return cls(value)

    @classmethod
    def from_labels(cls: type[F], *labels: str) -> F:
        """Build a flag set from label names (case-insensitive).

        Raises:
            KeyError: If a label is not declared on the class
        """
        lookup = {label.lower(): bit for label, bit in cls.LABELS}
        value = 0
        for label in labels:
            value |= lookup[label.lower()]
        return cls(value)

    def _bits(self, other: "Flags | int") -> int:
        if isinstance(other, Flags):
            if type(other) is not type(self):
                raise TypeError(
                    f"Cannot combine {type(self).__name__} with {type(other).__name__}"
                )
            return other.value
        return other

    def __or__(self: F, other: "Flags | int") -> F:
        return type(self)(self.value | self._bits(other))

    def __and__(self: F, other: "Flags | int") -> F:
        return type(self)(self.value & self._bits(other))

    def __contains__(self, other: "Flags | int") -> bool:
        return self.contains(other)

    def contains(self, other: "Flags | int") -> bool:
        """Check that every bit of ``other`` is on in this set."""
        bits = self._bits(other)
        return self.value & bits == bits

    def set_if(self: F, other: "Flags | int", condition: bool) -> F:
        """Return this set with ``other`` turned on iff ``condition`` holds."""
        if condition:
            return self | other
        return self

    def is_empty(self) -> bool:
        return self.value == 0

    def __bool__(self) -> bool:
        return self.value != 0

    def __int__(self) -> int:
        return self.value

    def __iter__(self: F) -> Iterator[F]:
        """Iterate over the single-bit flags that are on, lowest bit first."""
        for shift in range(self.WIDTH):
            bit = 1 << shift
            if self.value & bit:
                yield type(self)(bit)

    def labels(self) -> list[str]:
        """Labels of the bits that are on. Unlabelled bits show as hex."""
        names = {bit: label for label, bit in self.LABELS}
        return [names.get(flag.value, hex(flag.value)) for flag in self]

    def __repr__(self) -> str:
        inner = "|".join(self.labels()) or "EMPTY"
        return f"{type(self).__name__}({inner})"
