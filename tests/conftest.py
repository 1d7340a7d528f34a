import itertools
import random
from decimal import Decimal

import pytest

from squad_recommender.data.catalog import Candidate, CandidateCatalog, Group
from squad_recommender.utils.rules import SQUAD_QUOTAS, Category, to_units

GK, DEF, MID, FWD = Category.GK, Category.DEF, Category.MID, Category.FWD

# (id, team, category, price £m, projected value)
SCENARIO_ROWS = [
    (1, 1, GK, 5.5, 6.0), (2, 2, GK, 5.0, 5.0), (3, 3, GK, 4.5, 4.0), (4, 4, GK, 4.0, 3.5),
    (11, 5, DEF, 6.0, 7.0), (12, 5, DEF, 5.5, 6.5), (13, 5, DEF, 5.0, 6.0), (14, 5, DEF, 5.0, 5.8),
    (15, 6, DEF, 4.5, 5.5), (16, 7, DEF, 4.5, 5.0), (17, 8, DEF, 4.0, 4.5), (18, 9, DEF, 4.0, 4.0),
    (19, 10, DEF, 4.0, 3.5), (20, 1, DEF, 4.0, 3.0),
    (21, 6, MID, 9.0, 8.0), (22, 7, MID, 8.0, 7.5), (23, 8, MID, 7.0, 7.0), (24, 9, MID, 6.5, 6.0),
    (25, 10, MID, 6.0, 5.5), (26, 2, MID, 5.5, 5.0), (27, 3, MID, 5.0, 4.5), (28, 4, MID, 5.0, 4.0),
    (29, 1, MID, 4.5, 3.5), (30, 2, MID, 4.5, 3.0),
    (31, 3, FWD, 37.0, 9.0), (32, 4, FWD, 9.5, 8.5), (33, 1, FWD, 8.0, 7.0), (34, 6, FWD, 7.0, 6.5),
    (35, 7, FWD, 6.0, 5.0), (36, 8, FWD, 4.5, 4.0),
]

# best legal squad at £100.0 with 3 per team: £97.0, value 97.0
SCENARIO_ROSTER = {1, 2, 11, 12, 13, 15, 16, 21, 22, 23, 24, 25, 32, 33, 34}
SCENARIO_MIN_COST = Decimal("71.0")


def candidate(cid, team, category, price, value, available=True):
    return Candidate(
        id=cid,
        name=f"P{cid}",
        team=team,
        category=category,
        now_cost=int(round(price * 10)),
        projected_value=value,
        available=available,
    )


def make_scenario(default_caps=None):
    default_caps = default_caps or {}
    groups = [Group(id=t, name=f"Team {t}", short_name=f"T{t:02d}", default_cap=default_caps.get(t, 3))
              for t in range(1, 11)]
    return CandidateCatalog([candidate(*row) for row in SCENARIO_ROWS], groups, version="scenario")


@pytest.fixture
def scenario():
    return make_scenario()


def random_catalog(seed, teams=8):
    """Twenty candidates (3/6/7/4) with prices 4.0-9.0 and values 1.0-10.0."""
    rng = random.Random(seed)
    layout = [(GK, 3), (DEF, 6), (MID, 7), (FWD, 4)]
    rows, cid = [], 1
    for cat, n in layout:
        for _ in range(n):
            rows.append(Candidate(
                id=cid,
                name=f"R{cid}",
                team=rng.randint(1, teams),
                category=cat,
                now_cost=rng.randint(40, 90),
                projected_value=rng.randint(10, 100) / 10,
            ))
            cid += 1
    return CandidateCatalog(rows, [Group(id=t, name=f"Team {t}") for t in range(1, teams + 1)])


@pytest.fixture
def catalog_factory():
    return random_catalog


def brute_force(catalog, spec):
    """(value units, cost) of the best legal squad by full enumeration, or None."""
    pools = {
        cat: [c for c in catalog.by_category(cat) if c.id not in spec.excluded_ids]
        for cat in SQUAD_QUOTAS
    }
    best = None
    for parts in itertools.product(*(itertools.combinations(pools[cat], q) for cat, q in SQUAD_QUOTAS.items())):
        squad = [c for part in parts for c in part]
        cost = sum(c.now_cost for c in squad)
        if cost > spec.budget_units:
            continue
        ids = {c.id for c in squad}
        if not spec.required_ids <= ids:
            continue
        counts = {}
        for c in squad:
            counts[c.team] = counts.get(c.team, 0) + 1
        if any(n > spec.cap_for(t) for t, n in counts.items()):
            continue
        key = (sum(to_units(c.projected_value) for c in squad), -cost)
        if best is None or key > best:
            best = key
    return None if best is None else (best[0], -best[1])
