"""
Stock quantities.

An item's stock is either a finite count or ``Unlimited`` (consumables that
are not counted). The two are separate types so a real count can never be
compared against the sentinel by accident.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

UNLIMITED_LABEL = "Unlimited"


@dataclass(frozen=True)
class Finite:
    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"quantity must be an int, got {self.value!r}")
        if self.value < 0:
            raise ValueError(f"quantity must be >= 0, got {self.value}")


@dataclass(frozen=True)
class Unlimited:
    pass


UNLIMITED = Unlimited()

Quantity = Union[Finite, Unlimited]


def is_unlimited(q: Quantity) -> bool:
    return isinstance(q, Unlimited)


def parse_quantity(raw: object) -> Quantity:
    """int / numeric string / "Unlimited" (any case) -> Quantity"""
    if isinstance(raw, (Finite, Unlimited)):
        return raw
    if isinstance(raw, bool):
        raise ValueError(f"invalid quantity: {raw!r}")
    if isinstance(raw, int):
        return Finite(raw)
    if isinstance(raw, float) and raw.is_integer():
        return Finite(int(raw))
    if isinstance(raw, str):
        s = raw.strip()
        if s.lower() == UNLIMITED_LABEL.lower():
            return UNLIMITED
        if s.isdigit():
            return Finite(int(s))
    raise ValueError(f"invalid quantity: {raw!r}")


def dump_quantity(q: Quantity) -> int | str:
    if isinstance(q, Unlimited):
        return UNLIMITED_LABEL
    return q.value
