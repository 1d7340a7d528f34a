"""
Lineup derivation

Pick the starting XI, captain and bench order from a fixed 15-man roster.

FPL rules:
- exactly 11 starters: 1 GK plus the formation's DEF/MID/FWD counts
- the four non-starters form the bench, reserve keeper first
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

from ..data.catalog import Candidate
from ..utils.errors import InvalidFormation
from ..utils.rules import SQUAD_QUOTAS, VALID_FORMATIONS, VALUE_SCALE, Category, Formation, to_units
from .squad import Roster

log = logging.getLogger("squad.lineup")


@dataclass(frozen=True)
class Lineup:
    formation: Formation
    starters: Tuple[Candidate, ...]      # GK, DEF, MID, FWD; best first within a role
    captain: Candidate
    vice_captain: Candidate
    bench: Tuple[Candidate, ...]         # reserve keeper, then by projected value

    @property
    def starter_ids(self) -> Tuple[int, ...]:
        return tuple(c.id for c in self.starters)

    @property
    def bench_ids(self) -> Tuple[int, ...]:
        return tuple(c.id for c in self.bench)

    @property
    def starting_value(self) -> float:
        """Starters' projected total; the captain is not doubled here."""
        return sum(to_units(c.projected_value) for c in self.starters) / VALUE_SCALE


def _by_value(c: Candidate):
    return (-to_units(c.projected_value), c.id)


def _ranked_roles(roster: Roster) -> Dict[Category, List[Candidate]]:
    ranked = {cat: sorted(roster.by_category(cat), key=_by_value) for cat in SQUAD_QUOTAS}
    for cat, quota in SQUAD_QUOTAS.items():
        if len(ranked[cat]) != quota:
            raise InvalidFormation(
                f"roster has {len(ranked[cat])} {cat.short} players; a lineup needs the fixed "
                f"{'/'.join(str(q) for q in SQUAD_QUOTAS.values())} split"
            )
    return ranked


def derive_lineup(roster: Roster, formation: Formation) -> Lineup:
    """
    Top-N per position by projected value (ties: lower id), where N comes
    from the formation. Captain and vice are the two best starters.
    """
    problem = formation.problems()
    if problem:
        raise InvalidFormation(f"formation {formation}: {problem}")
    ranked = _ranked_roles(roster)

    starters: List[Candidate] = []
    reserves: List[Candidate] = []
    for cat, need in formation.counts.items():
        starters.extend(ranked[cat][:need])
        reserves.extend(ranked[cat][need:])

    by_value = sorted(starters, key=_by_value)
    captain, vice = by_value[0], by_value[1]

    keepers = [c for c in reserves if c.category == Category.GK]
    others = sorted((c for c in reserves if c.category != Category.GK), key=_by_value)
    bench = tuple(keepers + others)

    log.debug("Lineup %s: captain %s, bench %s", formation, captain.id, [c.id for c in bench])
    return Lineup(
        formation=formation,
        starters=tuple(starters),
        captain=captain,
        vice_captain=vice,
        bench=bench,
    )


def best_formation(roster: Roster) -> Formation:
    """Legal formation with the highest starting value; earlier shapes win ties."""
    ranked = _ranked_roles(roster)
    best, best_units = None, None
    for formation in VALID_FORMATIONS:
        units = sum(
            to_units(c.projected_value)
            for cat, need in formation.counts.items()
            for c in ranked[cat][:need]
        )
        if best_units is None or units > best_units:
            best, best_units = formation, units
    return best
