import argparse
import json
import logging
import sys
from typing import List, Optional

import pandas as pd

from .data.fpl_api import fetch_catalog
from .engine.assembler import OptimizationResult
from .engine.optimizer import optimize
from .engine.validator import OptimizationRequest
from .utils.config import MODES, EngineConfig
from .utils.errors import OptimizationError


def lineup_table(result: OptimizationResult) -> pd.DataFrame:
    """
    Starters first (in formation order), then the bench in its order,
    with role markers and the rationale for each pick.
    """
    players = {p["id"]: p for p in result.to_dict()["roster"]["players"]}
    order = list(result.lineup.starter_ids) + list(result.lineup.bench_ids)
    rows = []
    for slot, pid in enumerate(order):
        p = players[pid]
        if p["captain"]:
            role = "C"
        elif p["vice_captain"]:
            role = "VC"
        elif p["starter"]:
            role = "XI"
        else:
            role = f"B{slot - len(result.lineup.starters) + 1}"
        rows.append({
            "role": role,
            "id": pid,
            "name": p["name"],
            "team": p["team"],
            "pos": p["pos"],
            "price": p["price"],
            "value": round(p["projected_value"], 2),
            "fit": "" if p["available"] else "doubt",
            "reason": p["reason"],
        })
    return pd.DataFrame(rows)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="FPL squad recommender")
    parser.add_argument("--budget", type=str, required=True, help="Total budget in £m (e.g., 100.0)")
    parser.add_argument("--formation", type=str, default="auto", help='Starting shape like "3-4-3", or "auto"')
    parser.add_argument("--require", type=str, default="", help="Comma-separated player IDs that must be picked")
    parser.add_argument("--exclude", type=str, default="", help="Comma-separated player IDs to leave out")
    parser.add_argument("--max-from-team", type=int, default=None, help="Max players from one team (default 3)")
    parser.add_argument("--mode", choices=MODES, default=None, help="Search mode (default from SQUAD_DEFAULT_MODE)")
    parser.add_argument("--cache-dir", type=str, default=None, help="Reuse raw FPL responses stored here")
    parser.add_argument("--out", type=str, default="squad.json", help="Where to write the JSON result")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    print("Fetching FPL data…")
    catalog = fetch_catalog(cache_dir=args.cache_dir)

    print(f"Optimizing against catalog {catalog.version}…")
    request = OptimizationRequest(
        budget=args.budget,
        formation=args.formation,
        required_ids=args.require,
        excluded_ids=args.exclude,
        max_per_group=args.max_from_team,
    )
    try:
        result = optimize(catalog, request, mode=args.mode, config=EngineConfig.from_env())
    except OptimizationError as e:
        print(f"No squad: [{e.kind}] {e.message}")
        return 2

    label = "approximate" if result.roster.approximate else "optimal"
    print(f"{label.capitalize()} squad ({result.roster.mode}), formation {result.lineup.formation}: "
          f"£{result.roster.total_price:.1f}m, projected {result.roster.total_value:.2f}")
    if result.roster.note:
        print(f"Note: {result.roster.note}")
    print(lineup_table(result).to_string(index=False))

    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2)
    print(f"\nSaved JSON to {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
