"""Resource quantities as used in resource lists and container requests."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from fractions import Fraction

_NUMBER = re.compile(r"^([+-]?(?:\d+(?:\.\d*)?|\.\d+))(.*)$")
_EXPONENT = re.compile(r"^[eE]([+-]?\d+)$")

_BINARY_SUFFIXES = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}

_DECIMAL_SUFFIXES = {
    "n": -9,
    "u": -6,
    "m": -3,
    "": 0,
    "k": 3,
    "M": 6,
    "G": 9,
    "T": 12,
    "P": 15,
    "E": 18,
}


@dataclass(frozen=True)
class Quantity:
    """An exact resource amount, such as ``2`` CPU cores or ``512Mi`` bytes."""

    amount: Fraction

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", Fraction(self.amount))

    def value(self) -> int:
        """The amount as an integer, rounded up."""
        return math.ceil(self.amount)

    def milli_value(self) -> int:
        """The amount in thousandths, rounded up."""
        return math.ceil(self.amount * 1000)

    def as_approximate_float(self) -> float:
        """The amount as the nearest float."""
        return float(self.amount)


def _multiplier(suffix: str) -> Fraction:
    if suffix in _BINARY_SUFFIXES:
        return Fraction(_BINARY_SUFFIXES[suffix])
    if suffix in _DECIMAL_SUFFIXES:
        return Fraction(10) ** _DECIMAL_SUFFIXES[suffix]
    exponent = _EXPONENT.match(suffix)
    if exponent:
        return Fraction(10) ** int(exponent.group(1))
    raise ValueError(f"unable to parse quantity's suffix: {suffix!r}")


def parse_quantity(text: str) -> Quantity:
    """Parse a quantity string such as ``"1985m"``, ``"2Gi"`` or ``"1e3"``."""
    match = _NUMBER.match(text)
    if not match:
        raise ValueError(f"quantities must match the regular expression: {text!r}")
    number, suffix = match.groups()
    return Quantity(Fraction(number) * _multiplier(suffix))