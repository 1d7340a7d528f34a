import random
from decimal import Decimal

import pytest

from conftest import GK, SCENARIO_MIN_COST, SCENARIO_ROSTER, brute_force, candidate, make_scenario, random_catalog
from squad_recommender.data.catalog import CandidateCatalog
from squad_recommender.engine.squad import select_squad, solve_exact, solve_heuristic
from squad_recommender.engine.validator import roster_violations, validate_request
from squad_recommender.utils.config import EngineConfig
from squad_recommender.utils.errors import Infeasible, InternalLimitExceeded, InvalidConstraint
from squad_recommender.utils.rules import SQUAD_QUOTAS, ConstraintSpec, to_units

ROOMY = EngineConfig(max_nodes=100_000, fallback_to_heuristic=False)


def _units(members):
    return sum(to_units(c.projected_value) for c in members)


def _random_spec(seed, cap, pins=False):
    rng = random.Random(seed * 31 + cap)
    budget = Decimal(rng.randint(650, 950)) / 10
    required, excluded = frozenset(), frozenset()
    if pins:
        ids = rng.sample(range(1, 21), 2)
        required, excluded = frozenset(ids[:1]), frozenset(ids[1:])
    return ConstraintSpec(budget=budget, formation=None, required_ids=required,
                          excluded_ids=excluded, max_per_group=cap)


# --- scenario ------------------------------------------------------------------

def test_exact_scenario_roster(scenario):
    spec = validate_request({"budget": "100.0", "formation": "3-4-3"}, scenario)
    roster = select_squad(scenario, spec, mode="exact")
    assert roster.ids == SCENARIO_ROSTER
    assert roster.total_price == pytest.approx(97.0)
    assert roster.total_value == pytest.approx(97.0)
    assert roster.mode == "exact"
    assert roster.approximate is False
    assert roster.note is None


def test_roster_members_are_ordered_by_position_then_id(scenario):
    spec = validate_request({"budget": 100}, scenario)
    roster = select_squad(scenario, spec)
    keys = [(int(c.category), c.id) for c in roster.members]
    assert keys == sorted(keys)
    for cat, quota in SQUAD_QUOTAS.items():
        assert len(roster.by_category(cat)) == quota


def test_default_mode_is_exact(scenario):
    spec = validate_request({"budget": 100}, scenario)
    assert select_squad(scenario, spec).mode == "exact"


def test_one_tenth_under_minimum_cost_is_infeasible(scenario):
    spec = validate_request({"budget": SCENARIO_MIN_COST - Decimal("0.1")}, scenario)
    for mode in ("exact", "heuristic"):
        with pytest.raises(Infeasible) as exc:
            select_squad(scenario, spec, mode=mode)
        assert exc.value.constraint == "budget"
        assert exc.value.hint


def test_minimum_cost_budget_is_feasible(scenario):
    spec = validate_request({"budget": SCENARIO_MIN_COST}, scenario)
    roster = select_squad(scenario, spec, mode="exact")
    assert roster.total_cost <= 710
    assert roster_violations(roster, spec) == []


def test_required_and_excluded_are_honoured(scenario):
    spec = validate_request({"budget": 110, "required_ids": [31], "excluded_ids": "32,21"}, scenario)
    for mode in ("exact", "heuristic"):
        roster = select_squad(scenario, spec, mode=mode)
        assert 31 in roster.ids
        assert not {21, 32} & roster.ids


def test_required_player_over_budget(scenario):
    spec = validate_request({"budget": 80, "required_ids": [31]}, scenario)
    with pytest.raises(Infeasible) as exc:
        select_squad(scenario, spec)
    assert exc.value.constraint == "budget"


def test_required_players_over_team_limit(scenario):
    spec = validate_request({"budget": 100, "required_ids": [11, 12, 13, 14]}, scenario)
    with pytest.raises(Infeasible) as exc:
        select_squad(scenario, spec)
    assert exc.value.constraint == "group_cap"


def test_too_few_eligible_keepers(scenario):
    spec = validate_request({"budget": 100, "excluded_ids": [1, 2, 3]}, scenario)
    with pytest.raises(Infeasible) as exc:
        select_squad(scenario, spec)
    assert exc.value.constraint == "quota"


def test_team_limit_too_tight_for_fifteen(scenario):
    # ten teams at one player each cannot fill fifteen places
    spec = validate_request({"budget": 100, "max_per_group": 1}, scenario)
    with pytest.raises(Infeasible) as exc:
        select_squad(scenario, spec)
    assert exc.value.constraint == "group_cap"


def test_directory_cap_applies_without_override():
    catalog = make_scenario(default_caps={5: 2})
    spec = validate_request({"budget": 100}, catalog)
    roster = select_squad(catalog, spec)
    assert sum(1 for c in roster.members if c.team == 5) <= 2
    assert roster.total_value < 97.0

    override = validate_request({"budget": 100, "max_per_group": 3}, catalog)
    assert select_squad(catalog, override).ids == SCENARIO_ROSTER


def test_unknown_mode_rejected(scenario):
    spec = validate_request({"budget": 100}, scenario)
    with pytest.raises(InvalidConstraint) as exc:
        select_squad(scenario, spec, mode="fastest")
    assert exc.value.field == "mode"


# --- determinism -----------------------------------------------------------------

def test_same_inputs_same_roster(scenario):
    spec = validate_request({"budget": 100}, scenario)
    shuffled = CandidateCatalog(list(reversed(scenario.candidates)), scenario.groups)
    for mode in ("exact", "heuristic"):
        first = select_squad(scenario, spec, mode=mode)
        again = select_squad(scenario, spec, mode=mode)
        other = select_squad(shuffled, spec, mode=mode)
        assert first == again
        assert first.ids == other.ids


# --- heuristic -------------------------------------------------------------------

def test_heuristic_is_legal_and_marked_approximate(scenario):
    spec = validate_request({"budget": 100}, scenario)
    roster = select_squad(scenario, spec, mode="heuristic")
    assert roster.approximate is True
    assert roster.mode == "heuristic"
    assert roster_violations(roster, spec) == []


@pytest.mark.parametrize("seed", range(15))
def test_heuristic_never_beats_exact(seed):
    catalog = random_catalog(seed)
    spec = _random_spec(seed, cap=3)
    try:
        greedy = solve_heuristic(catalog, spec)
    except Infeasible:
        return
    best = solve_exact(catalog, spec, ROOMY)
    assert _units(greedy) <= _units(best)


# --- exact vs enumeration --------------------------------------------------------

@pytest.mark.parametrize("cap", [2, 3])
@pytest.mark.parametrize("seed", range(20))
def test_exact_matches_enumeration(seed, cap):
    catalog = random_catalog(seed)
    spec = _random_spec(seed, cap)
    expected = brute_force(catalog, spec)
    if expected is None:
        with pytest.raises(Infeasible):
            solve_exact(catalog, spec, ROOMY)
        return
    squad = solve_exact(catalog, spec, ROOMY)
    assert (_units(squad), sum(c.now_cost for c in squad)) == expected


@pytest.mark.parametrize("seed", range(20))
def test_exact_matches_enumeration_with_pins(seed):
    catalog = random_catalog(seed)
    spec = _random_spec(seed, cap=3, pins=True)
    expected = brute_force(catalog, spec)
    if expected is None:
        with pytest.raises(Infeasible):
            solve_exact(catalog, spec, ROOMY)
        return
    squad = solve_exact(catalog, spec, ROOMY)
    assert spec.required_ids <= {c.id for c in squad}
    assert (_units(squad), sum(c.now_cost for c in squad)) == expected


def test_equal_value_prefers_cheaper_squad(scenario):
    # a twin of keeper 2 at a lower price must replace it
    twin = candidate(5, 9, GK, 4.5, 5.0)
    catalog = CandidateCatalog(list(scenario.candidates) + [twin], scenario.groups)
    roster = select_squad(catalog, validate_request({"budget": 100}, catalog))
    assert 5 in roster.ids and 2 not in roster.ids
    assert roster.total_price == pytest.approx(96.5)
    assert roster.total_value == pytest.approx(97.0)


# --- limits ----------------------------------------------------------------------

def test_node_limit_falls_back_to_heuristic(scenario):
    spec = validate_request({"budget": 100}, scenario)
    roster = select_squad(scenario, spec, config=EngineConfig(max_nodes=1))
    assert roster.mode == "heuristic"
    assert roster.approximate is True
    assert "nodes" in roster.note
    assert roster_violations(roster, spec) == []


def test_node_limit_without_fallback_raises(scenario):
    spec = validate_request({"budget": 100}, scenario)
    with pytest.raises(InternalLimitExceeded) as exc:
        select_squad(scenario, spec, config=EngineConfig(max_nodes=1, fallback_to_heuristic=False))
    assert exc.value.limit == "max_nodes"
    assert exc.value.kind == "internal_limit_exceeded"


def test_cell_limit_falls_back_to_heuristic(scenario):
    spec = validate_request({"budget": 100}, scenario)
    roster = select_squad(scenario, spec, config=EngineConfig(max_exact_cells=10))
    assert roster.mode == "heuristic"
    assert "cells" in roster.note


@pytest.mark.parametrize("seed", range(12))
def test_exact_matches_enumeration_when_team_limits_bind(seed):
    # six teams for twenty players: most optima need players forced in by branching
    catalog = random_catalog(seed, teams=6)
    spec = ConstraintSpec(budget=Decimal("95.0"), formation=None, max_per_group=3)
    expected = brute_force(catalog, spec)
    if expected is None:
        with pytest.raises(Infeasible):
            solve_exact(catalog, spec, ROOMY)
        return
    squad = solve_exact(catalog, spec, ROOMY)
    assert (_units(squad), sum(c.now_cost for c in squad)) == expected


def test_exact_beats_every_branch_free_squad(scenario):
    # the unrestricted best takes four team-5 defenders, so the answer must come from a branch
    spec = validate_request({"budget": 100}, scenario)
    squad = solve_exact(scenario, spec, ROOMY)
    assert (_units(squad), sum(c.now_cost for c in squad)) == (970_000, 970)
    assert _units(squad) >= _units(solve_heuristic(scenario, spec))
