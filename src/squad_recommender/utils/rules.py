from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from enum import IntEnum
from typing import Dict, FrozenSet, Optional, Sequence, Tuple

# FPL constraints
MAX_FROM_TEAM = 3
MIN_GROUP_CAP, MAX_GROUP_CAP = 1, 15
SQUAD_SIZE = 15
STARTING_SIZE = 11

# projected values are compared as integers of this many units per point
VALUE_SCALE = 10_000


class Category(IntEnum):
    """Squad roles; values match the FPL element_type codes."""
    GK = 1
    DEF = 2
    MID = 3
    FWD = 4

    @property
    def short(self) -> str:
        return POSITION_NAMES[int(self)]


# positions per FPL element_type
# 1=GK, 2=DEF, 3=MID, 4=FWD
POSITION_NAMES = {1: "GK", 2: "DEF", 3: "MID", 4: "FWD"}

SQUAD_QUOTAS: Dict[Category, int] = {
    Category.GK: 2,
    Category.DEF: 5,
    Category.MID: 5,
    Category.FWD: 3,
}

# allowed starters per outfield role (inclusive)
FORMATION_RANGES: Dict[Category, Tuple[int, int]] = {
    Category.DEF: (3, 5),
    Category.MID: (2, 5),
    Category.FWD: (1, 3),
}


def to_units(value: float) -> int:
    """Projected value as fixed-point integer units."""
    return int(round(float(value) * VALUE_SCALE))


@dataclass(frozen=True)
class Formation:
    defenders: int
    midfielders: int
    forwards: int

    @classmethod
    def parse(cls, raw) -> "Formation":
        """
        Accepts "3-4-3", "343", (3, 4, 3) or an existing Formation.
        Raises ValueError on anything that is not three integers.
        """
        if isinstance(raw, Formation):
            return raw
        if isinstance(raw, str):
            text = raw.strip()
            parts = text.split("-") if "-" in text else list(text)
        elif isinstance(raw, Sequence):
            parts = list(raw)
        else:
            raise ValueError(f"cannot read a formation from {raw!r}")
        if len(parts) != 3:
            raise ValueError(f"formation needs three numbers, got {raw!r}")
        try:
            d, m, f = (int(str(p).strip()) for p in parts)
        except ValueError:
            raise ValueError(f"formation parts must be integers, got {raw!r}") from None
        return cls(d, m, f)

    @property
    def counts(self) -> Dict[Category, int]:
        return {
            Category.GK: 1,
            Category.DEF: self.defenders,
            Category.MID: self.midfielders,
            Category.FWD: self.forwards,
        }

    def problems(self) -> Optional[str]:
        """First rule this formation breaks, or None when it is legal."""
        for cat, (lo, hi) in FORMATION_RANGES.items():
            n = self.counts[cat]
            if not lo <= n <= hi:
                return f"{cat.short} count {n} outside [{lo},{hi}]"
        if self.defenders + self.midfielders + self.forwards != STARTING_SIZE - 1:
            return f"outfield counts must sum to {STARTING_SIZE - 1}, got {self}"
        return None

    @property
    def is_valid(self) -> bool:
        return self.problems() is None

    def __str__(self) -> str:
        return f"{self.defenders}-{self.midfielders}-{self.forwards}"


# every legal shape, in the order best_formation breaks ties
VALID_FORMATIONS: Tuple[Formation, ...] = tuple(
    Formation(d, m, f)
    for d in range(3, 6)
    for m in range(5, 1, -1)
    for f in range(1, 4)
    if d + m + f == STARTING_SIZE - 1
)


@dataclass(frozen=True)
class ConstraintSpec:
    budget: Decimal                      # total £ available (e.g. 100.0)
    formation: Optional[Formation]       # None -> pick the best shape
    required_ids: FrozenSet[int] = frozenset()
    excluded_ids: FrozenSet[int] = frozenset()
    max_per_group: int = MAX_FROM_TEAM
    group_caps: Tuple[Tuple[int, int], ...] = field(default=())

    @property
    def budget_units(self) -> int:
        """Budget in price tenths, rounded down."""
        return int((self.budget * 10).to_integral_value(rounding=ROUND_FLOOR))

    def cap_for(self, team: int) -> int:
        for gid, cap in self.group_caps:
            if gid == team:
                return cap
        return self.max_per_group
