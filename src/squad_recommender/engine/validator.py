from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

from ..data.catalog import CandidateCatalog
from ..utils.errors import InvalidConstraint
from ..utils.rules import (
    MAX_FROM_TEAM, MAX_GROUP_CAP, MIN_GROUP_CAP, SQUAD_QUOTAS, SQUAD_SIZE,
    Category, ConstraintSpec, Formation,
)

log = logging.getLogger("squad.validator")


@dataclass
class OptimizationRequest:
    """Raw, unchecked request fields as a caller hands them over."""
    budget: Any = None
    formation: Any = None
    required_ids: Any = field(default_factory=list)
    excluded_ids: Any = field(default_factory=list)
    max_per_group: Any = None


def parse_ids(raw: Any, field_name: str) -> FrozenSet[int]:
    """
    Accepts "1,2;3", a single int, or any iterable of int-like values.
    Anything that is not an integer id fails the named field.
    """
    if raw is None or raw == "":
        return frozenset()
    if isinstance(raw, str):
        tokens = [t.strip() for t in raw.replace(";", ",").split(",") if t.strip()]
    elif isinstance(raw, int) and not isinstance(raw, bool):
        tokens = [raw]
    else:
        try:
            tokens = list(raw)
        except TypeError:
            raise InvalidConstraint(field_name, f"expected a list of ids, got {raw!r}") from None
    ids = set()
    for tok in tokens:
        if isinstance(tok, bool):
            raise InvalidConstraint(field_name, f"{tok!r} is not a player id")
        try:
            ids.add(int(str(tok).strip()))
        except ValueError:
            raise InvalidConstraint(field_name, f"{tok!r} is not a player id") from None
    return frozenset(ids)


def _parse_budget(raw: Any) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise InvalidConstraint("budget", "a budget is required")
    try:
        budget = Decimal(str(raw).strip())
    except InvalidOperation:
        raise InvalidConstraint("budget", f"{raw!r} is not a number") from None
    if not budget.is_finite():
        raise InvalidConstraint("budget", "must be finite")
    if budget <= 0:
        raise InvalidConstraint("budget", f"must be greater than 0, got {budget}")
    return budget


def _parse_formation(raw: Any) -> Optional[Formation]:
    if raw is None or (isinstance(raw, str) and raw.strip().lower() in ("", "auto")):
        return None
    try:
        formation = Formation.parse(raw)
    except ValueError as e:
        raise InvalidConstraint("formation", str(e)) from None
    problem = formation.problems()
    if problem:
        raise InvalidConstraint("formation", problem)
    return formation


def _parse_cap(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise InvalidConstraint("max_per_group", f"{raw!r} is not an integer")
    try:
        number = Decimal(str(raw).strip())
    except InvalidOperation:
        raise InvalidConstraint("max_per_group", f"{raw!r} is not an integer") from None
    # 3, "3", 3.0 and Decimal("3.00") are all the same limit
    if not number.is_finite() or number != number.to_integral_value():
        raise InvalidConstraint("max_per_group", f"{raw!r} is not an integer")
    cap = int(number)
    if not MIN_GROUP_CAP <= cap <= MAX_GROUP_CAP:
        raise InvalidConstraint("max_per_group", f"must be within [{MIN_GROUP_CAP},{MAX_GROUP_CAP}], got {cap}")
    return cap


def validate_request(raw: Union[OptimizationRequest, Mapping[str, Any]],
                     catalog: CandidateCatalog) -> ConstraintSpec:
    """
    Turn a raw request into a ConstraintSpec, failing on the first bad field:
    budget, formation, required/excluded overlap, required ids against the
    catalog and position quotas, then the per-team limit.
    """
    fields: Dict[str, Any] = asdict(raw) if isinstance(raw, OptimizationRequest) else dict(raw)

    budget = _parse_budget(fields.get("budget"))
    formation = _parse_formation(fields.get("formation"))

    required = parse_ids(fields.get("required_ids"), "required_ids")
    excluded = parse_ids(fields.get("excluded_ids"), "excluded_ids")
    both = required & excluded
    if both:
        raise InvalidConstraint("required_ids", f"ids both required and excluded: {sorted(both)}")

    if len(required) > SQUAD_SIZE:
        raise InvalidConstraint("required_ids", f"at most {SQUAD_SIZE} players can be required, got {len(required)}")
    unknown = sorted(i for i in required if i not in catalog)
    if unknown:
        raise InvalidConstraint("required_ids", f"unknown player ids {unknown}")
    per_cat: Dict[Category, int] = {}
    for cid in required:
        cat = catalog[cid].category
        per_cat[cat] = per_cat.get(cat, 0) + 1
    for cat, quota in SQUAD_QUOTAS.items():
        if per_cat.get(cat, 0) > quota:
            raise InvalidConstraint(
                "required_ids",
                f"{per_cat[cat]} {cat.short} players required but the squad holds {quota}",
            )

    stray = sorted(i for i in excluded if i not in catalog)
    if stray:
        log.debug("Ignoring excluded ids not in catalog %s: %s", catalog.version, stray)

    cap = _parse_cap(fields.get("max_per_group"))
    if cap is None:
        group_caps = tuple((g.id, g.default_cap) for g in catalog.groups if g.default_cap != MAX_FROM_TEAM)
        cap = MAX_FROM_TEAM
    else:
        group_caps = ()

    return ConstraintSpec(
        budget=budget,
        formation=formation,
        required_ids=required,
        excluded_ids=excluded,
        max_per_group=cap,
        group_caps=group_caps,
    )


def roster_violations(roster, spec: ConstraintSpec) -> List[str]:
    """Every broken roster invariant, as readable lines. Empty means legal."""
    errors: List[str] = []
    members = list(roster.members)

    ids = [c.id for c in members]
    if len(ids) != SQUAD_SIZE or len(set(ids)) != SQUAD_SIZE:
        errors.append(f"squad must have exactly {SQUAD_SIZE} distinct players, has {len(set(ids))}")

    for cat, quota in SQUAD_QUOTAS.items():
        have = sum(1 for c in members if c.category == cat)
        if have != quota:
            errors.append(f"need {quota} {cat.short}, have {have}")

    total = sum(c.now_cost for c in members)
    if total > spec.budget_units:
        errors.append(f"total cost {total / 10:.1f} exceeds budget {spec.budget_units / 10:.1f}")

    team_counts: Dict[int, int] = {}
    for c in members:
        team_counts[c.team] = team_counts.get(c.team, 0) + 1
    for team, n in sorted(team_counts.items()):
        if n > spec.cap_for(team):
            errors.append(f"{n} players from team {team}, limit {spec.cap_for(team)}")

    missing = sorted(spec.required_ids - set(ids))
    if missing:
        errors.append(f"required players missing: {missing}")
    banned = sorted(spec.excluded_ids & set(ids))
    if banned:
        errors.append(f"excluded players present: {banned}")
    return errors
