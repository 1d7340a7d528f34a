from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from ..data.catalog import CandidateCatalog
from ..utils.config import EngineConfig
from .assembler import CatalogSummary, OptimizationResult, assemble
from .lineup import best_formation, derive_lineup
from .squad import select_squad
from .validator import OptimizationRequest, validate_request

log = logging.getLogger("squad.optimizer")


def optimize(catalog: CandidateCatalog,
             raw_request: Union[OptimizationRequest, Mapping[str, Any]],
             mode: Optional[str] = None,
             config: Optional[EngineConfig] = None,
             summary: Optional[CatalogSummary] = None) -> OptimizationResult:
    """
    Validate -> select squad -> derive lineup -> assemble.
    Raises an OptimizationError subclass on any engine failure.
    """
    spec = validate_request(raw_request, catalog)
    roster = select_squad(catalog, spec, mode=mode, config=config)
    formation = spec.formation or best_formation(roster)
    lineup = derive_lineup(roster, formation)
    result = assemble(catalog, spec, roster, lineup, summary=summary)
    log.info(
        "Optimized catalog %s: mode=%s value=%.2f cost=%.1f formation=%s captain=%s",
        catalog.version, roster.mode, roster.total_value, roster.total_price, formation, lineup.captain.id,
    )
    return result
