# src/squad_recommender/server.py
from __future__ import annotations

import csv
import io
import logging
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

import requests
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from squad_recommender.data.catalog import CandidateCatalog
from squad_recommender.data.fpl_api import fetch_catalog
from squad_recommender.engine.assembler import CatalogSummary, OptimizationResult, summarize_catalog
from squad_recommender.engine.optimizer import optimize
from squad_recommender.engine.validator import OptimizationRequest, validate_request
from squad_recommender.utils.cache import MemoryResultStore
from squad_recommender.utils.config import EngineConfig
from squad_recommender.utils.errors import OptimizationError

# ----------------------------- Logging ---------------------------------------
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
log = logging.getLogger("squad.server")

CONFIG = EngineConfig.from_env()
RESULTS = MemoryResultStore()

# error kind -> HTTP status
STATUS_BY_KIND = {
    "invalid_constraint": 400,
    "invalid_formation": 400,
    "infeasible": 422,
    "internal_limit_exceeded": 503,
}


# ----------------------------- Data loader -----------------------------------
def _load_catalog() -> CandidateCatalog:
    return fetch_catalog(cache_dir=os.environ.get("SQUAD_CACHE_DIR") or None)


@lru_cache(maxsize=1)
def _get_catalog() -> CandidateCatalog:
    catalog = _load_catalog()
    log.info("Loaded catalog %s: %d candidates", catalog.version, len(catalog))
    return catalog


@lru_cache(maxsize=1)
def _get_summary() -> CatalogSummary:
    return summarize_catalog(_get_catalog())


def _reload_catalog() -> CandidateCatalog:
    _get_catalog.cache_clear()  # type: ignore[attr-defined]
    _get_summary.cache_clear()  # type: ignore[attr-defined]
    RESULTS.clear()
    return _get_catalog()


# ---------------------------------- App --------------------------------------
app = FastAPI(title="Squad Recommender", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OptimizationError)
async def _optimization_error(request: Request, exc: OptimizationError) -> JSONResponse:
    status = STATUS_BY_KIND.get(exc.kind, 400)
    log.info("Rejected %s: [%s] %s", request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=status, content={"error": exc.to_dict()})


@app.get("/health", include_in_schema=False)
def health() -> Dict[str, Any]:
    # never triggers a fetch; only reports what is already loaded
    loaded = _get_catalog.cache_info().currsize > 0  # type: ignore[attr-defined]
    return {
        "ok": True,
        "catalog_loaded": loaded,
        "catalog_version": _get_catalog().version if loaded else None,
        "default_mode": CONFIG.default_mode,
        "cached_results": len(RESULTS),
    }


@app.post("/reload-data", include_in_schema=False)
def reload_data() -> Dict[str, Any]:
    try:
        catalog = _reload_catalog()
    except (requests.RequestException, ValueError) as e:
        log.exception("Reload failed")
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}") from e
    return {"ok": True, "reloaded": True, "catalog_version": catalog.version}


# --------------------------------- Helpers -----------------------------------
def _to_csv(rows: Sequence[Dict[str, Any]]) -> str:
    if not rows:
        return ""
    cols = list(rows[0].keys())
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=cols)
    writer.writeheader()
    for r in rows:
        writer.writerow({k: r.get(k, "") for k in cols})
    return buf.getvalue()


def _wants_csv(request: Request, fmt: Optional[str]) -> bool:
    if fmt and fmt.lower() == "csv":
        return True
    accept = request.headers.get("accept", "")
    return "text/csv" in accept.lower()


def _role(p: Dict[str, Any]) -> str:
    if p["captain"]:
        return "C"
    if p["vice_captain"]:
        return "VC"
    return "XI" if p["starter"] else "SUB"


def _compact_row(p: Dict[str, Any]) -> Dict[str, Any]:
    """Minimal fields for a table view."""
    return {
        "id": p["id"],
        "name": p["name"],
        "team": p["team"],
        "pos": p["pos"],
        "price": round(p["price"], 1),
        "value": round(p["projected_value"], 2),
        "role": _role(p),
    }


def _player_rows(result: OptimizationResult, compact: bool) -> List[Dict[str, Any]]:
    """Roster rows in lineup order: starters, then the bench."""
    players = {p["id"]: p for p in result.to_dict()["roster"]["players"]}
    order = list(result.lineup.starter_ids) + list(result.lineup.bench_ids)
    rows = [players[pid] for pid in order]
    return [_compact_row(p) for p in rows] if compact else rows


# ---------------------------------- API --------------------------------------
@app.get("/optimize")
def api_optimize(
    request: Request,
    budget: str = Query(..., description="Total budget in £m"),
    formation: str = Query("auto", description='e.g. "3-4-3"; "auto" picks the best shape'),
    require: str = Query("", description="Comma-separated ids that must be picked"),
    exclude: str = Query("", description="Comma-separated ids to leave out"),
    max_from_team: Optional[int] = Query(None),
    mode: Optional[str] = Query(None, description="exact or heuristic"),
    format: Optional[str] = Query(None),
    compact: bool = Query(False, description="Return compact rows only"),
):
    try:
        catalog = _get_catalog()
    except requests.RequestException as e:
        log.exception("Catalog fetch failed")
        raise HTTPException(status_code=503, detail=f"Catalog unavailable: {e}") from e

    raw = OptimizationRequest(
        budget=budget,
        formation=formation,
        required_ids=require,
        excluded_ids=exclude,
        max_per_group=max_from_team,
    )
    spec = validate_request(raw, catalog)
    resolved_mode = (mode or CONFIG.default_mode).strip().lower()
    key = (catalog.version, spec, resolved_mode)
    result = RESULTS.get_or_compute(
        key, lambda: optimize(catalog, raw, mode=resolved_mode, config=CONFIG, summary=_get_summary())
    )

    if _wants_csv(request, format):
        return PlainTextResponse(
            content=_to_csv(_player_rows(result, compact)),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": 'attachment; filename="squad.csv"'},
        )

    if compact:
        body = result.to_dict()
        body["roster"]["players"] = _player_rows(result, compact=True)
        return JSONResponse(body)
    return JSONResponse(result.to_dict())
