import dataclasses

import pandas as pd
import pytest

from conftest import DEF, GK, candidate
from squad_recommender.data import fpl_api
from squad_recommender.data.catalog import Candidate, CandidateCatalog, Group, catalog_from_frame


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, bootstrap, fixtures):
        self.calls = []
        self.routes = {"bootstrap-static": bootstrap, "fixtures": fixtures}

    def get(self, url, timeout=None):
        self.calls.append(url)
        name = url.rstrip("/").rsplit("/", 1)[-1]
        return FakeResponse(self.routes[name])


BOOTSTRAP = {
    "events": [{"id": 6, "is_next": False}, {"id": 7, "is_next": True}],
    "teams": [{"id": 1, "name": "Arsenal", "short_name": "ARS"}, {"id": 2, "name": "Brentford", "short_name": "BRE"}],
    "elements": [
        {"id": 10, "web_name": "Raya", "team": 1, "element_type": 1, "now_cost": 55, "form": "4.0", "status": "a"},
        {"id": 11, "web_name": "Saliba", "team": 1, "element_type": 2, "now_cost": 60, "form": "5.0", "status": "d"},
        {"id": 12, "web_name": "Coach", "team": 2, "element_type": 5, "now_cost": 10, "form": "0.0", "status": "a"},
        {"id": 13, "web_name": "Nobody", "team": 2, "element_type": 3, "now_cost": 0, "form": "0.0", "status": "a"},
    ],
}


def test_catalog_orders_by_id_and_looks_up(scenario):
    assert [c.id for c in scenario][:3] == [1, 2, 3]
    assert 11 in scenario and 999 not in scenario
    assert scenario[11].team == 5
    assert scenario.get(999) is None
    assert len(scenario.by_category(GK)) == 4
    assert scenario.group(5).short_name == "T05"


def test_catalog_is_read_only(scenario):
    with pytest.raises(AttributeError):
        scenario.version = "other"
    with pytest.raises(dataclasses.FrozenInstanceError):
        scenario[1].now_cost = 1


def test_duplicate_ids_rejected():
    with pytest.raises(ValueError):
        CandidateCatalog([candidate(1, 1, GK, 4.0, 1.0), candidate(1, 2, DEF, 4.0, 1.0)])


def test_non_positive_price_rejected():
    with pytest.raises(ValueError):
        Candidate(id=1, name="x", team=1, category=GK, now_cost=0, projected_value=1.0)


def test_category_coerced_from_element_type():
    assert Candidate(id=1, name="x", team=1, category=2, now_cost=40, projected_value=1.0).category == DEF


def test_group_cap_range():
    with pytest.raises(ValueError):
        Group(id=1, name="x", default_cap=0)


def test_version_tracks_content():
    rows = [candidate(1, 1, GK, 4.0, 1.0), candidate(2, 1, DEF, 4.5, 2.0)]
    same = CandidateCatalog(list(reversed(rows)))
    assert CandidateCatalog(rows).version == same.version
    changed = CandidateCatalog([rows[0], candidate(2, 1, DEF, 4.5, 2.5)])
    assert changed.version != same.version


def test_catalog_from_frame_skips_non_squad_rows():
    frame = pd.DataFrame([
        {"id": 1, "web_name": "A", "team": 1, "element_type": 1, "now_cost": 45, "projected_value": 2.0,
         "available": True},
        {"id": 2, "web_name": "B", "team": 1, "element_type": 5, "now_cost": 10, "projected_value": 0.0,
         "available": True},
        {"id": 3, "web_name": "C", "team": 2, "element_type": 4, "now_cost": 0, "projected_value": 1.0,
         "available": True},
        {"id": 4, "web_name": "D", "team": 2, "element_type": 4, "now_cost": 70, "projected_value": 3.14159,
         "available": False},
    ])
    catalog = catalog_from_frame(frame, [{"id": 1, "name": "Arsenal", "short_name": "ARS"}])
    assert [c.id for c in catalog] == [1, 4]
    assert catalog[4].projected_value == pytest.approx(3.1416)
    assert catalog[4].available is False
    assert catalog.group(1).name == "Arsenal"


def test_fetch_catalog_from_feed(monkeypatch):
    monkeypatch.setattr(fpl_api, "throttle", lambda seconds=0.5: None)
    session = FakeSession(BOOTSTRAP, [])
    catalog = fpl_api.fetch_catalog(session=session)
    assert [c.id for c in catalog] == [10, 11]
    assert catalog.version.startswith("gw7-")
    assert catalog[11].available is False
    assert [g.short_name for g in catalog.groups] == ["ARS", "BRE"]
    assert len(session.calls) == 2


def test_fetch_catalog_reuses_disk_cache(tmp_path):
    first = FakeSession(BOOTSTRAP, [])
    fpl_api.fetch_catalog(session=first, cache_dir=str(tmp_path))
    assert (tmp_path / "bootstrap-static.json").exists()

    second = FakeSession(BOOTSTRAP, [])
    catalog = fpl_api.fetch_catalog(session=second, cache_dir=str(tmp_path))
    assert second.calls == []
    assert len(catalog) == 2
