"""
Squad selection: choose 15 candidates under budget, position quotas and
per-team limits, maximising total projected value.

Two modes sit behind select_squad():

* exact     - best-first branch and bound. The relaxation drops team limits
              and solves one 0/1 knapsack table per position (count x exact
              cost), joined over the shared budget by max-plus convolution.
              A relaxed squad that also respects every team limit is optimal.
* heuristic - value-per-price greedy fill with a budget reservation for the
              places still open. Fast, deterministic, not optimal.

Values are compared in fixed-point units (VALUE_SCALE) so equal sums are
equal exactly. Squads are ordered by value, then by lower cost; within a
position the earlier ranked candidate (value, price, id) wins a tie.
"""
from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from ..data.catalog import Candidate, CandidateCatalog
from ..utils.config import MODES, EngineConfig
from ..utils.errors import Infeasible, InternalLimitExceeded, InvalidConstraint
from ..utils.rules import SQUAD_QUOTAS, SQUAD_SIZE, VALUE_SCALE, Category, ConstraintSpec, to_units
from .validator import roster_violations

log = logging.getLogger("squad.selector")

NEG_INF = float("-inf")
CATEGORIES: Tuple[Category, ...] = tuple(SQUAD_QUOTAS)


@dataclass(frozen=True)
class Roster:
    members: Tuple[Candidate, ...]
    total_cost: int            # tenths
    total_value: float
    mode: str
    approximate: bool
    note: Optional[str] = None

    @classmethod
    def build(cls, members: Sequence[Candidate], mode: str, note: Optional[str] = None) -> "Roster":
        ordered = tuple(sorted(members, key=lambda c: (int(c.category), c.id)))
        units = sum(to_units(c.projected_value) for c in ordered)
        return cls(
            members=ordered,
            total_cost=sum(c.now_cost for c in ordered),
            total_value=round(units / VALUE_SCALE, 4),
            mode=mode,
            approximate=mode != "exact",
            note=note,
        )

    @property
    def ids(self) -> FrozenSet[int]:
        return frozenset(c.id for c in self.members)

    @property
    def total_price(self) -> float:
        return self.total_cost / 10.0

    def by_category(self, category: Category) -> Tuple[Candidate, ...]:
        return tuple(c for c in self.members if c.category == category)


def _rank_key(c: Candidate):
    return (-to_units(c.projected_value), c.now_cost, c.id)


def _ratio_key(c: Candidate):
    return (-(to_units(c.projected_value) / c.now_cost), c.now_cost, c.id)


# --- Pinning -----------------------------------------------------------------

@dataclass
class _Base:
    pinned: Tuple[Candidate, ...]
    quotas: Dict[Category, int]          # places still open per position
    budget: int                          # tenths left after pins
    team_counts: Dict[int, int]          # pinned players per team
    pool: Tuple[Candidate, ...]          # eligible, unpinned, ranked
    caps: Dict[int, int]


def _cheapest_completion(pool: Sequence[Candidate], quotas: Dict[Category, int]) -> int:
    total = 0
    for cat, left in quotas.items():
        prices = sorted(c.now_cost for c in pool if c.category == cat)
        total += sum(prices[:left])
    return total


def _pin(catalog: CandidateCatalog, spec: ConstraintSpec) -> _Base:
    """Lock required players in, drop excluded ones, and fail fast on conflicts."""
    caps = {c.team: spec.cap_for(c.team) for c in catalog}

    pinned: List[Candidate] = []
    for cid in sorted(spec.required_ids):
        cand = catalog.get(cid)
        if cand is None:
            raise Infeasible(f"required player {cid} is not in catalog {catalog.version}", constraint="required")
        pinned.append(cand)

    quotas = dict(SQUAD_QUOTAS)
    counts: Dict[int, int] = {}
    for c in pinned:
        quotas[c.category] -= 1
        counts[c.team] = counts.get(c.team, 0) + 1

    for cat, left in quotas.items():
        if left < 0:
            raise Infeasible(
                f"{SQUAD_QUOTAS[cat] - left} required {cat.short} players exceed the quota of {SQUAD_QUOTAS[cat]}",
                constraint="quota",
            )
    for team, n in sorted(counts.items()):
        if n > caps[team]:
            raise Infeasible(f"{n} required players from team {team} exceed the limit of {caps[team]}",
                             constraint="group_cap")

    spent = sum(c.now_cost for c in pinned)
    if spent > spec.budget_units:
        raise Infeasible(
            f"required players cost {spent / 10:.1f}, over the budget of {spec.budget_units / 10:.1f}",
            constraint="budget",
        )

    pool = sorted(
        (c for c in catalog
         if c.id not in spec.excluded_ids
         and c.id not in spec.required_ids
         and counts.get(c.team, 0) < caps[c.team]),
        key=_rank_key,
    )

    for cat, left in quotas.items():
        have = sum(1 for c in pool if c.category == cat)
        if have < left:
            raise Infeasible(f"only {have} eligible {cat.short} players for {left} open places",
                             constraint="quota")

    open_places = sum(quotas.values())
    per_team: Dict[int, int] = {}
    for c in pool:
        per_team[c.team] = per_team.get(c.team, 0) + 1
    room = sum(min(n, caps[t] - counts.get(t, 0)) for t, n in per_team.items())
    if room < open_places:
        raise Infeasible(f"per-team limits leave room for {room} players but {open_places} places are open",
                         constraint="group_cap")

    budget = spec.budget_units - spent
    cheapest = _cheapest_completion(pool, quotas)
    if cheapest > budget:
        raise Infeasible(
            f"the cheapest way to fill the squad costs {(spent + cheapest) / 10:.1f}, "
            f"over the budget of {spec.budget_units / 10:.1f}",
            constraint="budget",
        )

    return _Base(tuple(pinned), quotas, budget, counts, tuple(pool), caps)


# --- Exact mode ----------------------------------------------------------------

def _knapsack(members: Sequence[Candidate], quota: int, budget: int, track: bool = False):
    """
    table[k, b] = best value units of exactly k members costing exactly b.
    With track=True also returns take[i, k, b]: member i improved (k, b).
    """
    table = np.full((quota + 1, budget + 1), NEG_INF)
    table[0, 0] = 0.0
    take = np.zeros((len(members), quota + 1, budget + 1), dtype=bool) if track else None
    for i, c in enumerate(members):
        p = c.now_cost
        if p > budget:
            continue
        v = float(to_units(c.projected_value))
        for k in range(quota, 0, -1):
            gain = table[k - 1, : budget + 1 - p] + v
            row = table[k, p:]
            better = gain > row
            if track:
                take[i, k, p:] = better
            row[better] = gain[better]
    return table, take


def _combine(left: np.ndarray, right: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Max-plus convolution over exact cost; split[b] is left's share of b."""
    size = left.shape[0]
    out = np.full(size, NEG_INF)
    split = np.full(size, -1, dtype=np.int64)
    for x in np.flatnonzero(left > NEG_INF):
        gain = left[x] + right[: size - x]
        view = out[x:]
        better = gain > view
        view[better] = gain[better]
        split[x:][better] = x
    return out, split


def _backtrack(members: Sequence[Candidate], take: np.ndarray, count: int, spend: int) -> List[Candidate]:
    picked: List[Candidate] = []
    for i in range(len(members) - 1, -1, -1):
        if count == 0:
            break
        if take[i, count, spend]:
            picked.append(members[i])
            count -= 1
            spend -= members[i].now_cost
    if count or spend:
        raise RuntimeError("knapsack backtrack did not close; tables are inconsistent")
    return picked


@dataclass
class _NodeState:
    forced_in: FrozenSet[int]
    forced_out: FrozenSet[int]
    quotas: Dict[Category, int]
    budget: int
    counts: Dict[int, int]
    removed: Dict[Category, FrozenSet[int]]
    forced_value: int = 0              # value units already locked in by forced_in
    forced_cost: int = 0


class _ExactSearch:
    """One exact solve. Memo tables live only as long as the instance."""

    def __init__(self, base: _Base, config: EngineConfig):
        self.base = base
        self.config = config
        self.index = {c.id: c for c in base.pool}
        self.by_cat = {cat: tuple(c for c in base.pool if c.category == cat) for cat in CATEGORIES}

        # no selection can cost more than the dearest members of each position
        ceiling = 0
        for cat in CATEGORIES:
            prices = sorted((c.now_cost for c in self.by_cat[cat]), reverse=True)
            ceiling += sum(prices[: base.quotas[cat]])
        self.max_budget = min(base.budget, ceiling)

        cells = sum(len(self.by_cat[cat]) * (base.quotas[cat] + 1) for cat in CATEGORIES) * (self.max_budget + 1)
        if cells > config.max_exact_cells:
            raise InternalLimitExceeded(
                f"exact search needs {cells} table cells, limit is {config.max_exact_cells}",
                limit="max_exact_cells",
            )
        self._tables: Dict[Tuple[Category, FrozenSet[int]], np.ndarray] = {}

    def _state(self, forced_in: FrozenSet[int], forced_out: FrozenSet[int]) -> Optional[_NodeState]:
        caps = self.base.caps
        quotas = dict(self.base.quotas)
        counts = dict(self.base.team_counts)
        spent = units = 0
        for cid in forced_in:
            c = self.index[cid]
            quotas[c.category] -= 1
            counts[c.team] = counts.get(c.team, 0) + 1
            spent += c.now_cost
            units += to_units(c.projected_value)
        if any(q < 0 for q in quotas.values()) or any(n > caps[t] for t, n in counts.items()):
            return None
        if spent > self.base.budget:
            return None

        removed: Dict[Category, FrozenSet[int]] = {}
        for cat in CATEGORIES:
            removed[cat] = frozenset(
                c.id for c in self.by_cat[cat]
                if c.id in forced_in or c.id in forced_out or counts.get(c.team, 0) >= caps[c.team]
            )
        budget = min(self.base.budget - spent, self.max_budget)
        return _NodeState(forced_in, forced_out, quotas, budget, counts, removed, units, spent)

    def _members(self, cat: Category, removed: FrozenSet[int]) -> List[Candidate]:
        return [c for c in self.by_cat[cat] if c.id not in removed]

    def _table(self, cat: Category, removed: FrozenSet[int]) -> np.ndarray:
        key = (cat, removed)
        table = self._tables.get(key)
        if table is None:
            table, _ = _knapsack(self._members(cat, removed), self.base.quotas[cat], self.max_budget)
            self._tables[key] = table
        return table

    def _bound(self, state: _NodeState) -> Optional[Tuple[float, int]]:
        """Best relaxed (value units, cost) for the node, or None if empty."""
        rows = [self._table(cat, state.removed[cat])[state.quotas[cat], : state.budget + 1] for cat in CATEGORIES]
        total = rows[0]
        for row in rows[1:]:
            total, _ = _combine(total, row)
        cost = int(np.argmax(total))
        if total[cost] == NEG_INF:
            return None
        return float(total[cost]), cost

    def _relaxed_squad(self, state: _NodeState) -> List[Candidate]:
        members, takes, rows = {}, {}, []
        for cat in CATEGORIES:
            members[cat] = self._members(cat, state.removed[cat])
            table, takes[cat] = _knapsack(members[cat], self.base.quotas[cat], self.max_budget, track=True)
            rows.append(table[state.quotas[cat], : state.budget + 1])

        total, splits = rows[0], []
        for row in rows[1:]:
            total, split = _combine(total, row)
            splits.append(split)

        cost = int(np.argmax(total))
        spends = [0] * len(CATEGORIES)
        for idx in range(len(CATEGORIES) - 1, 0, -1):
            x = int(splits[idx - 1][cost])
            spends[idx] = cost - x
            cost = x
        spends[0] = cost

        chosen: List[Candidate] = []
        for cat, spend in zip(CATEGORIES, spends):
            chosen.extend(_backtrack(members[cat], takes[cat], state.quotas[cat], spend))
        return chosen

    def _over_cap(self, state: _NodeState, chosen: Sequence[Candidate]) -> Optional[int]:
        counts = dict(state.counts)
        for c in chosen:
            counts[c.team] = counts.get(c.team, 0) + 1
        over = sorted(t for t, n in counts.items() if n > self.base.caps[t])
        return over[0] if over else None

    def _branch(self, state: _NodeState, chosen: Sequence[Candidate], team: int):
        """
        Split on an over-limit team with free slots s: child j forces the
        j best relaxed members in and member j+1 out, for j = 0..s.
        The children are disjoint and together keep every legal squad.
        """
        members = sorted((c for c in chosen if c.team == team), key=_rank_key)
        slots = self.base.caps[team] - state.counts.get(team, 0)
        for j in range(slots + 1):
            yield (
                state.forced_in | frozenset(c.id for c in members[:j]),
                state.forced_out | frozenset([members[j].id]),
            )

    def run(self) -> List[Candidate]:
        counter = itertools.count()
        heap: list = []

        def push(forced_in, forced_out):
            state = self._state(forced_in, forced_out)
            if state is None:
                return
            bound = self._bound(state)
            if bound is not None:
                # rank on the whole squad: forced players plus the relaxed fill
                value = bound[0] + state.forced_value
                cost = bound[1] + state.forced_cost
                heapq.heappush(heap, (-value, cost, next(counter), state))

        push(frozenset(), frozenset())
        if not heap:
            raise Infeasible("no combination of the open places fits the remaining budget", constraint="budget")

        expanded = 0
        while heap:
            _, cost, _, state = heapq.heappop(heap)
            expanded += 1
            if expanded > self.config.max_nodes:
                raise InternalLimitExceeded(
                    f"exact search expanded {self.config.max_nodes} nodes without proving optimality",
                    limit="max_nodes",
                )
            chosen = self._relaxed_squad(state)
            team = self._over_cap(state, chosen)
            if team is None:
                log.debug("Exact search closed after %d nodes (%d tables)", expanded, len(self._tables))
                return [self.index[cid] for cid in sorted(state.forced_in)] + chosen
            for forced_in, forced_out in self._branch(state, chosen, team):
                push(forced_in, forced_out)

        raise Infeasible("no squad respects the per-team limits within the budget", constraint="group_cap")


def solve_exact(catalog: CandidateCatalog, spec: ConstraintSpec, config: Optional[EngineConfig] = None) -> List[Candidate]:
    """Optimal 15 for the spec; raises Infeasible or InternalLimitExceeded."""
    base = _pin(catalog, spec)
    return list(base.pinned) + _ExactSearch(base, config or EngineConfig()).run()


# --- Heuristic mode ------------------------------------------------------------

def solve_heuristic(catalog: CandidateCatalog, spec: ConstraintSpec) -> List[Candidate]:
    """
    Greedy fill by value per price (ties: lower price, lower id). A candidate
    is admitted when its position has an open place, its team is under the
    limit, and the budget still covers the cheapest way to fill every other
    open place afterwards.
    """
    base = _pin(catalog, spec)
    quotas = dict(base.quotas)
    counts = dict(base.team_counts)
    budget = base.budget
    chosen: List[Candidate] = []
    taken = set()
    blocked_by_cap = False

    cheapest = {
        cat: sorted((c for c in base.pool if c.category == cat), key=lambda c: (c.now_cost, c.id))
        for cat in CATEGORIES
    }

    def reserve(skip_id: int) -> int:
        total = 0
        for cat, left in quotas.items():
            n = 0
            for c in cheapest[cat]:
                if n >= left:
                    break
                if c.id == skip_id or c.id in taken:
                    continue
                total += c.now_cost
                n += 1
        return total

    open_places = sum(quotas.values())
    for cand in sorted(base.pool, key=_ratio_key):
        if len(chosen) == open_places:
            break
        cat = cand.category
        if quotas[cat] == 0 or cand.now_cost > budget:
            continue
        if counts.get(cand.team, 0) >= base.caps[cand.team]:
            blocked_by_cap = True
            continue
        quotas[cat] -= 1
        if cand.now_cost + reserve(cand.id) > budget:
            quotas[cat] += 1
            continue
        chosen.append(cand)
        taken.add(cand.id)
        counts[cand.team] = counts.get(cand.team, 0) + 1
        budget -= cand.now_cost

    if len(chosen) < open_places:
        filled = len(base.pinned) + len(chosen)
        raise Infeasible(
            f"greedy selection filled {filled} of {SQUAD_SIZE} places",
            constraint="group_cap" if blocked_by_cap else "budget",
        )
    return list(base.pinned) + chosen


# --- Entry point ---------------------------------------------------------------

def select_squad(catalog: CandidateCatalog, spec: ConstraintSpec, mode: Optional[str] = None,
                 config: Optional[EngineConfig] = None) -> Roster:
    config = config or EngineConfig()
    mode = (mode or config.default_mode).strip().lower()
    if mode not in MODES:
        raise InvalidConstraint("mode", f"must be one of {', '.join(MODES)}")

    if mode == "heuristic":
        roster = Roster.build(solve_heuristic(catalog, spec), mode="heuristic")
    else:
        try:
            roster = Roster.build(solve_exact(catalog, spec, config), mode="exact")
        except InternalLimitExceeded as exc:
            if not config.fallback_to_heuristic:
                raise
            log.warning("Exact search stopped (%s); using the heuristic instead", exc.message)
            roster = Roster.build(solve_heuristic(catalog, spec), mode="heuristic", note=exc.message)

    problems = roster_violations(roster, spec)
    if problems:
        raise RuntimeError(f"selector produced an illegal roster: {'; '.join(problems)}")
    log.debug("Selected %s squad: value %.2f, cost %.1f", roster.mode, roster.total_value, roster.total_price)
    return roster
