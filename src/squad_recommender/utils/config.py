"""
Engine settings. Defaults live here; deployments override them through
SQUAD_* environment variables.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

MODES = ("exact", "heuristic")

DEFAULT_MODE = "exact"
MAX_NODES = 2000               # branch-and-bound expansions per request
MAX_EXACT_CELLS = 40_000_000   # knapsack cells allowed before searching


def _flag(raw: str) -> bool:
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class EngineConfig:
    default_mode: str = DEFAULT_MODE
    max_nodes: int = MAX_NODES
    max_exact_cells: int = MAX_EXACT_CELLS
    fallback_to_heuristic: bool = True

    def __post_init__(self):
        if self.default_mode not in MODES:
            raise ValueError(f"default_mode must be one of {MODES}, got {self.default_mode!r}")
        if self.max_nodes < 1 or self.max_exact_cells < 1:
            raise ValueError("search limits must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        env = os.environ if environ is None else environ
        return cls(
            default_mode=env.get("SQUAD_DEFAULT_MODE", DEFAULT_MODE).strip().lower(),
            max_nodes=int(env.get("SQUAD_MAX_NODES", MAX_NODES)),
            max_exact_cells=int(env.get("SQUAD_MAX_EXACT_CELLS", MAX_EXACT_CELLS)),
            fallback_to_heuristic=_flag(env.get("SQUAD_FALLBACK", "1")),
        )
