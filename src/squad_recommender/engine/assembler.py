from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from ..data.catalog import Candidate, CandidateCatalog
from ..utils.rules import POSITION_NAMES, SQUAD_QUOTAS, Category, ConstraintSpec
from .lineup import Lineup
from .squad import Roster

# --- Rationale rules -----------------------------------------------------------

REQUESTED = "included by explicit request"
CAPTAIN = "captain"
VICE_CAPTAIN = "vice-captain"
ABOVE_MEDIAN = "value-to-price ratio above catalog median"
HIGH_VALUE = "high projected value for position"
FILLER = "low-cost quota filler"
BEST_FIT = "best fit under budget and team limits"


@dataclass(frozen=True)
class CatalogSummary:
    median_ratio: float
    cheap_price: Mapping[Category, float]       # lower-quartile now_cost per position
    high_value: Mapping[Category, float]        # 90th-percentile value per position


def _ratio(c: Candidate) -> float:
    return c.projected_value / c.now_cost


def summarize_catalog(catalog: CandidateCatalog) -> CatalogSummary:
    ratios = np.array([_ratio(c) for c in catalog], dtype=float)
    cheap: Dict[Category, float] = {}
    high: Dict[Category, float] = {}
    for cat in SQUAD_QUOTAS:
        members = catalog.by_category(cat)
        if not members:
            cheap[cat], high[cat] = 0.0, float("inf")
            continue
        cheap[cat] = float(np.percentile([c.now_cost for c in members], 25))
        high[cat] = float(np.percentile([c.projected_value for c in members], 90))
    return CatalogSummary(
        median_ratio=float(np.median(ratios)) if ratios.size else 0.0,
        cheap_price=cheap,
        high_value=high,
    )


def rationale_for(c: Candidate, spec: ConstraintSpec, lineup: Lineup, summary: CatalogSummary) -> str:
    reasons: List[str] = []
    if c.id in spec.required_ids:
        reasons.append(REQUESTED)
    if c.id == lineup.captain.id:
        reasons.append(CAPTAIN)
    elif c.id == lineup.vice_captain.id:
        reasons.append(VICE_CAPTAIN)
    above = _ratio(c) > summary.median_ratio
    if above:
        reasons.append(ABOVE_MEDIAN)
    if c.projected_value >= summary.high_value[c.category]:
        reasons.append(HIGH_VALUE)
    if not above and c.now_cost <= summary.cheap_price[c.category]:
        reasons.append(FILLER)
    return "; ".join(reasons) if reasons else BEST_FIT


# --- Result --------------------------------------------------------------------

@dataclass(frozen=True)
class OptimizationResult:
    catalog_version: str
    spec: ConstraintSpec
    roster: Roster
    lineup: Lineup
    rationale: Tuple[Tuple[int, str], ...]

    def reason(self, candidate_id: int) -> Optional[str]:
        return dict(self.rationale).get(candidate_id)

    def to_dict(self) -> Dict[str, Any]:
        reasons = dict(self.rationale)
        starters = set(self.lineup.starter_ids)

        def row(c: Candidate) -> Dict[str, Any]:
            return {
                "id": c.id,
                "name": c.name,
                "team": c.team,
                "pos": POSITION_NAMES[int(c.category)],
                "price": c.price,
                "projected_value": c.projected_value,
                "available": c.available,
                "starter": c.id in starters,
                "captain": c.id == self.lineup.captain.id,
                "vice_captain": c.id == self.lineup.vice_captain.id,
                "reason": reasons.get(c.id, ""),
            }

        return {
            "catalog_version": self.catalog_version,
            "mode": self.roster.mode,
            "approximate": self.roster.approximate,
            "note": self.roster.note,
            "constraints": {
                "budget": float(self.spec.budget),
                "formation": str(self.lineup.formation),
                "required_ids": sorted(self.spec.required_ids),
                "excluded_ids": sorted(self.spec.excluded_ids),
                "max_per_group": self.spec.max_per_group,
            },
            "roster": {
                "players": [row(c) for c in self.roster.members],
                "total_price": self.roster.total_price,
                "total_value": self.roster.total_value,
            },
            "lineup": {
                "formation": str(self.lineup.formation),
                "starters": list(self.lineup.starter_ids),
                "captain": self.lineup.captain.id,
                "vice_captain": self.lineup.vice_captain.id,
                "bench": list(self.lineup.bench_ids),
                "starting_value": self.lineup.starting_value,
            },
        }


def assemble(catalog: CandidateCatalog, spec: ConstraintSpec, roster: Roster, lineup: Lineup,
             summary: Optional[CatalogSummary] = None) -> OptimizationResult:
    """Pure: same roster, lineup and catalog always give the same result."""
    summary = summary or summarize_catalog(catalog)
    rationale = tuple((c.id, rationale_for(c, spec, lineup, summary)) for c in roster.members)
    return OptimizationResult(
        catalog_version=catalog.version,
        spec=spec,
        roster=roster,
        lineup=lineup,
        rationale=rationale,
    )
