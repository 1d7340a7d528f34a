import logging
import time
from typing import Any, Dict, List, Optional

import requests

from ..features.projections import build_player_frame
from ..utils.cache import cache_json
from .catalog import CandidateCatalog, catalog_from_frame

FPL_BASE = "https://fantasy.premierleague.com/api"
TIMEOUT = 20

log = logging.getLogger("squad.data")


def fetch_bootstrap_static(session: requests.Session = None) -> Dict[str, Any]:
    """
    Core FPL dataset: players, teams, element_types, events (GWs), etc.
    """
    s = session or requests.Session()
    r = s.get(f"{FPL_BASE}/bootstrap-static/", timeout=TIMEOUT)
    r.raise_for_status()
    return r.json()


def fetch_fixtures(session: requests.Session = None) -> List[Dict[str, Any]]:
    """
    All fixtures with difficulty ratings and home/away flags.
    """
    s = session or requests.Session()
    r = s.get(f"{FPL_BASE}/fixtures/", timeout=TIMEOUT)
    r.raise_for_status()
    return r.json()


def throttle(seconds: float = 0.5):
    time.sleep(seconds)


def _current_event(bootstrap: Dict[str, Any]) -> Optional[int]:
    for event in bootstrap.get("events", []):
        if event.get("is_next"):
            return int(event["id"])
    return None


def fetch_catalog(session: requests.Session = None, cache_dir: Optional[str] = None,
                  ttl_seconds: int = 3600) -> CandidateCatalog:
    """
    Pull the live feed and score it into a fresh CandidateCatalog.
    With cache_dir set, raw responses are reused for ttl_seconds.
    """
    s = session or requests.Session()
    if cache_dir:
        bootstrap = cache_json(f"{cache_dir}/bootstrap-static.json", ttl_seconds, lambda: fetch_bootstrap_static(s))
        fixtures = cache_json(f"{cache_dir}/fixtures.json", ttl_seconds, lambda: fetch_fixtures(s))
    else:
        log.info("Fetching bootstrap-static …")
        bootstrap = fetch_bootstrap_static(s)
        throttle(0.2)
        log.info("Fetching fixtures …")
        fixtures = fetch_fixtures(s)

    frame = build_player_frame(bootstrap, fixtures)
    catalog = catalog_from_frame(frame, bootstrap.get("teams", []))
    event = _current_event(bootstrap)
    if event is not None:
        # prefix the content hash with the gameweek so versions read naturally
        catalog = CandidateCatalog(catalog.candidates, catalog.groups, version=f"gw{event}-{catalog.version}")
    return catalog
