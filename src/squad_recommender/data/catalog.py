from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import pandas as pd

from ..utils.rules import MAX_FROM_TEAM, MAX_GROUP_CAP, MIN_GROUP_CAP, POSITION_NAMES, Category

log = logging.getLogger("squad.data")


@dataclass(frozen=True)
class Candidate:
    id: int
    name: str
    team: int                  # group id
    category: Category
    now_cost: int              # tenths of £m, as FPL reports it
    projected_value: float
    available: bool = True     # informational; never filters selection

    def __post_init__(self):
        if self.now_cost <= 0:
            raise ValueError(f"candidate {self.id} has non-positive price {self.now_cost}")
        if not isinstance(self.category, Category):
            object.__setattr__(self, "category", Category(int(self.category)))

    @property
    def price(self) -> float:
        return self.now_cost / 10.0


@dataclass(frozen=True)
class Group:
    id: int
    name: str
    short_name: str = ""
    default_cap: int = MAX_FROM_TEAM

    def __post_init__(self):
        if not MIN_GROUP_CAP <= self.default_cap <= MAX_GROUP_CAP:
            raise ValueError(f"group {self.id} default cap {self.default_cap} outside [1,15]")


def catalog_version(candidates: Iterable[Candidate]) -> str:
    """Content hash: equal candidate data always yields the same token."""
    rows = sorted(
        (c.id, c.name, c.team, int(c.category), c.now_cost, repr(float(c.projected_value)), c.available)
        for c in candidates
    )
    digest = hashlib.sha1(json.dumps(rows, separators=(",", ":")).encode("utf-8"))
    return digest.hexdigest()[:16]


class CandidateCatalog:
    """
    Immutable, versioned snapshot of every selectable candidate.
    A refresh builds a new catalog; existing ones are never patched.
    """

    __slots__ = ("_candidates", "_by_id", "_groups", "_version")

    def __init__(self, candidates: Iterable[Candidate], groups: Iterable[Group] = (),
                 version: Optional[str] = None):
        ordered = tuple(sorted(candidates, key=lambda c: c.id))
        by_id: Dict[int, Candidate] = {}
        for c in ordered:
            if c.id in by_id:
                raise ValueError(f"duplicate candidate id {c.id}")
            by_id[c.id] = c
        object.__setattr__(self, "_candidates", ordered)
        object.__setattr__(self, "_by_id", by_id)
        object.__setattr__(self, "_groups", {g.id: g for g in groups})
        object.__setattr__(self, "_version", version or catalog_version(ordered))

    def __setattr__(self, name, value):
        raise AttributeError("CandidateCatalog is read-only")

    @property
    def version(self) -> str:
        return self._version

    @property
    def candidates(self) -> Tuple[Candidate, ...]:
        return self._candidates

    @property
    def groups(self) -> Tuple[Group, ...]:
        return tuple(self._groups[k] for k in sorted(self._groups))

    def group(self, group_id: int) -> Optional[Group]:
        return self._groups.get(group_id)

    def by_category(self, category: Category) -> Tuple[Candidate, ...]:
        return tuple(c for c in self._candidates if c.category == category)

    def get(self, candidate_id: int) -> Optional[Candidate]:
        return self._by_id.get(candidate_id)

    def __getitem__(self, candidate_id: int) -> Candidate:
        return self._by_id[candidate_id]

    def __contains__(self, candidate_id: object) -> bool:
        return candidate_id in self._by_id

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self._candidates)

    def __len__(self) -> int:
        return len(self._candidates)

    def __repr__(self) -> str:
        return f"CandidateCatalog(version={self._version!r}, candidates={len(self._candidates)})"


def catalog_from_frame(df: pd.DataFrame, teams: List[Dict[str, Any]] = None,
                       version: Optional[str] = None) -> CandidateCatalog:
    """
    Convert a scored player frame (see features.projections) into a catalog.
    Rows outside the four squad roles or without a price are skipped.
    """
    candidates: List[Candidate] = []
    skipped = 0
    for row in df.itertuples(index=False):
        element_type = int(getattr(row, "element_type", 0) or 0)
        now_cost = int(getattr(row, "now_cost", 0) or 0)
        if element_type not in POSITION_NAMES or now_cost <= 0:
            skipped += 1
            continue
        candidates.append(Candidate(
            id=int(row.id),
            name=str(getattr(row, "web_name", "") or f"Player {row.id}"),
            team=int(row.team),
            category=Category(element_type),
            now_cost=now_cost,
            projected_value=round(float(row.projected_value), 4),
            available=bool(getattr(row, "available", True)),
        ))

    groups = [
        Group(id=int(t["id"]), name=str(t.get("name", "")), short_name=str(t.get("short_name", "")))
        for t in (teams or [])
        if "id" in t
    ]
    if skipped:
        log.info("Skipped %d rows without a squad role or price", skipped)
    catalog = CandidateCatalog(candidates, groups, version=version)
    log.info("Built catalog %s with %d candidates, %d groups", catalog.version, len(catalog), len(groups))
    return catalog
