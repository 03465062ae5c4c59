"""Resource quantities and duration formatting used in metric tables."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction


class QuantityFormat(Enum):
    """How a quantity is written back out."""

    DECIMAL_SI = "DecimalSI"
    BINARY_SI = "BinarySI"
    DECIMAL_EXPONENT = "DecimalExponent"


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
_EXPONENT_TO_SUFFIX = {exponent: suffix for suffix, exponent in _DECIMAL_SUFFIXES.items()}
_BINARY_NAMES = ("", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei")
_BINARY_SUFFIXES = {name: 10 * power for power, name in enumerate(_BINARY_NAMES) if name}

_NUMBER = re.compile(r"([+-]?)(\d+(?:\.\d*)?|\.\d+)(.*)")
_EXPONENT = re.compile(r"[eE]([+-]?\d+)")
_NANO = 10**9


@dataclass(frozen=True)
class Quantity:
    """An exact amount of a resource together with its preferred notation."""

    value: Fraction = Fraction(0)
    format: QuantityFormat = QuantityFormat.DECIMAL_SI

    def __add__(self, other: object) -> Quantity:
        if not isinstance(other, Quantity):
            return NotImplemented
        fmt = other.format if self.value == 0 else self.format
        return Quantity(self.value + other.value, fmt)

    def __str__(self) -> str:
        fmt = self.format
        if fmt is QuantityFormat.BINARY_SI and (
            self.value.denominator != 1 or abs(self.value) < 1024
        ):
            fmt = QuantityFormat.DECIMAL_SI
        if fmt is QuantityFormat.BINARY_SI:
            amount = int(self.value)
            power = 0
            while power < len(_BINARY_NAMES) - 1 and amount % 1024 == 0:
                amount //= 1024
                power += 1
            return f"{amount}{_BINARY_NAMES[power]}"

        scaled = math.ceil(self.value * _NANO)
        if scaled == 0:
            return "0"
        exponent = -9
        while exponent < 18 and scaled % 1000 == 0:
            scaled //= 1000
            exponent += 3
        if fmt is QuantityFormat.DECIMAL_EXPONENT:
            return f"{scaled}e{exponent}" if exponent else str(scaled)
        return f"{scaled}{_EXPONENT_TO_SUFFIX[exponent]}"


def _parse_number(number: str) -> Fraction:
    whole, _, frac = number.partition(".")
    denominator = 10 ** len(frac)
    return Fraction(int(whole or "0") * denominator + int(frac or "0"), denominator)


def parse_quantity(text: str) -> Quantity:
    """Parse a quantity such as ``10m``, ``5Mi`` or ``1e3``."""
    match = _NUMBER.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid quantity: {text!r}")
    sign, number, suffix = match.groups()
    value = _parse_number(number)

    if suffix in _BINARY_SUFFIXES:
        value *= 2 ** _BINARY_SUFFIXES[suffix]
        fmt = QuantityFormat.BINARY_SI
    elif suffix in _DECIMAL_SUFFIXES:
        value *= Fraction(10) ** _DECIMAL_SUFFIXES[suffix]
        fmt = QuantityFormat.DECIMAL_SI
    else:
        exponent = _EXPONENT.fullmatch(suffix)
        if exponent is None:
            raise ValueError(f"invalid quantity suffix in {text!r}")
        value *= Fraction(10) ** int(exponent.group(1))
        fmt = QuantityFormat.DECIMAL_EXPONENT

    if sign == "-":
        value = -value
    return Quantity(value, fmt)


def _fraction_text(amount: int, precision: int) -> str:
    whole, frac = divmod(amount, 10**precision)
    digits = f"{frac:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(nanoseconds: int) -> str:
    """Render a duration given in nanoseconds, e.g. ``1µs`` or ``1h2m3.5s``."""
    total = int(nanoseconds)
    amount = abs(total)
    if amount == 0:
        return "0s"
    if amount < _NANO:
        if amount < 1000:
            text = f"{amount}ns"
        elif amount < 1_000_000:
            text = _fraction_text(amount, 3) + "µs"
        else:
            text = _fraction_text(amount, 6) + "ms"
    else:
        hours, rest = divmod(amount, 3600 * _NANO)
        minutes, rest = divmod(rest, 60 * _NANO)
        text = _fraction_text(rest, 9) + "s"
        if hours:
            text = f"{hours}h{minutes}m{text}"
        elif minutes:
            text = f"{minutes}m{text}"
    return "-" + text if total < 0 else text