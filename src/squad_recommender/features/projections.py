from typing import Any, Dict, List

import numpy as np
import pandas as pd

# --- Projection weights (tunable) ------------------------------------------

WEIGHTS = {
    "form": 0.35,
    "points_per_game": 0.25,
    "fixture_outlook": 0.15,
    "ict_index": 0.05,      # ICT runs roughly 0-20 per game; scaled below
    "ep_next": 0.20,
}
FIXTURE_HORIZON = 3

# FPL status codes: a=available, d=doubtful, i=injured, s=suspended, u=unavailable, n=not eligible
AVAILABLE_STATUS = "a"

# --- Helper scoring functions ---------------------------------------------


def _minutes_risk_penalty(chance_of_playing_next_round) -> float:
    """Penalty if low chance to play; None/NaN is unknown and costs nothing."""
    if chance_of_playing_next_round is None or pd.isna(chance_of_playing_next_round):
        return 0.0
    # scale: 0 -> -1.0, 60 and above -> none
    return - max(0.0, (60 - float(chance_of_playing_next_round))) / 60.0


def _team_strengths(teams: pd.DataFrame) -> Dict[int, float]:
    """Average home/away strength per team, rescaled to 1..5 (3 when flat)."""
    if teams.empty or "id" not in teams.columns:
        return {}
    for col in ["strength_overall_home", "strength_overall_away"]:
        if col not in teams.columns:
            teams[col] = 3
    raw = ((teams["strength_overall_home"] + teams["strength_overall_away"]) / 2).astype(float).to_numpy()
    lo, hi = raw.min(), raw.max()
    scaled = np.full(raw.shape, 3.0) if hi == lo else 1 + 4 * (raw - lo) / (hi - lo)
    return dict(zip(teams["id"].astype(int), scaled.tolist()))


def _fixture_outlook(team_ids: pd.Series, fixtures_df: pd.DataFrame, strengths: Dict[int, float],
                     horizon: int = FIXTURE_HORIZON) -> pd.Series:
    """
    Mean ease of each team's next `horizon` fixtures: inverted FDR, inverted
    opponent strength, and a small home boost. Teams without fixtures get 0.
    """
    required = {"team_h", "team_a", "team_h_difficulty", "team_a_difficulty"}
    if fixtures_df.empty or not required.issubset(fixtures_df.columns):
        return pd.Series(0.0, index=team_ids.index)

    upcoming = fixtures_df
    if "finished" in upcoming.columns:
        upcoming = upcoming[~upcoming["finished"].fillna(False).astype(bool)]
    if "event" in upcoming.columns:
        upcoming = upcoming.sort_values(["event", "team_h"], na_position="last", kind="stable")
    # row order is fixture order from here on
    upcoming = upcoming.reset_index(drop=True)

    home = pd.DataFrame({
        "team": upcoming["team_h"], "opp": upcoming["team_a"],
        "fdr": upcoming["team_h_difficulty"], "home": 1.0,
    })
    away = pd.DataFrame({
        "team": upcoming["team_a"], "opp": upcoming["team_h"],
        "fdr": upcoming["team_a_difficulty"], "home": 0.0,
    })
    sides = pd.concat([home, away], ignore_index=False).sort_index(kind="stable")
    sides = sides.groupby("team", sort=False).head(horizon)

    opp_strength = sides["opp"].map(strengths).fillna(3.0)
    sides = sides.assign(score=(6 - sides["fdr"]) * 0.6 + (6 - opp_strength) * 0.3 + sides["home"] * 0.2)
    per_team = sides.groupby("team")["score"].mean()
    return team_ids.map(per_team).fillna(0.0).astype(float)


def build_player_frame(bootstrap: Dict[str, Any], fixtures: List[Dict[str, Any]]) -> pd.DataFrame:
    """
    One row per FPL element with a `projected_value` score and an
    `available` flag. Every element is kept: availability only lowers the
    score through the minutes penalty, it never removes a player.
    """
    elements = pd.DataFrame(bootstrap.get("elements", []))
    teams = pd.DataFrame(bootstrap.get("teams", []))
    fixtures_df = pd.DataFrame(fixtures or [])

    # ---- Columns we want, with safe defaults when missing ----
    desired_cols = {
        "id": None,
        "web_name": "",
        "team": 0,
        "element_type": 0,
        "now_cost": 0,
        "form": 0.0,
        "points_per_game": 0.0,
        "ict_index": 0.0,
        "ep_next": 0.0,
        "chance_of_playing_next_round": None,   # may be absent; treat as unknown
        "status": AVAILABLE_STATUS,
    }
    for c, default in desired_cols.items():
        if c not in elements.columns:
            elements[c] = default

    df = elements[list(desired_cols.keys())].copy()

    # ---- Basic transforms ----
    df["now_cost"] = pd.to_numeric(df["now_cost"], errors="coerce").fillna(0).astype(int)
    for c in ["form", "points_per_game", "ict_index", "ep_next"]:
        df[c] = pd.to_numeric(df[c], errors="coerce").fillna(0.0)
    df["status"] = df["status"].fillna(AVAILABLE_STATUS)
    df["available"] = df["status"].eq(AVAILABLE_STATUS)
    df["risk_penalty"] = df["chance_of_playing_next_round"].apply(_minutes_risk_penalty)
    df["fixture_outlook"] = _fixture_outlook(df["team"], fixtures_df, _team_strengths(teams))

    # ---- Composite projection ----
    df["projected_value"] = (
        WEIGHTS["form"] * df["form"]
        + WEIGHTS["points_per_game"] * df["points_per_game"]
        + WEIGHTS["fixture_outlook"] * df["fixture_outlook"]
        + WEIGHTS["ict_index"] * (df["ict_index"] / 10.0)
        + WEIGHTS["ep_next"] * df["ep_next"]
        + df["risk_penalty"]
    ).round(4)

    return df.sort_values(["projected_value", "id"], ascending=[False, True]).reset_index(drop=True)
