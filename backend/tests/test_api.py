"""API tests: listing, detail, views, categories, map, location and local login."""
import pytest
from fastapi.testclient import TestClient

import main
from listings.data.geo import Coordinates

CENTER_LAT, CENTER_LNG = -34.0489, 24.9087
KM_PER_DEG_LAT = 111.195


def _north(km: float) -> float:
    return CENTER_LAT + km / KM_PER_DEG_LAT


@pytest.fixture
def services_file(write_services, make_service):
    return write_services([
        make_service("far", "Kayak Tours", category="tours", lat=_north(5), lng=CENTER_LNG, views=3),
        make_service("near", "Surf Lessons", category="surfing", lat=_north(1), lng=CENTER_LNG, price_range="moderate"),
        make_service("noloc", "Airport Shuttle", category="transport", description="Surf boards welcome"),
        make_service("mid", "Calamari Takeaway", category="food", lat=_north(3), lng=CENTER_LNG, author_name="Sipho"),
        make_service("odd", "Beach Yoga", category="wellness", lat=_north(20), lng=CENTER_LNG),
    ])


@pytest.fixture
def client(services_file, tmp_path, monkeypatch):
    """TestClient with services JSON and views DB pointed at temp files."""
    monkeypatch.setattr(main, "SERVICES_JSON", services_file)
    monkeypatch.setattr(main, "VIEWS_DB", tmp_path / "views.db")
    main._view_guard.clear()
    main._location_cache.clear()
    return TestClient(main.app)


def _ids(data: list[dict]) -> list[str]:
    return [s["id"] for s in data]


# --- GET /services ---


def test_list_services_all_in_file_order(client):
    r = client.get("/services")
    assert r.status_code == 200
    data = r.json()
    assert _ids(data) == ["far", "near", "noloc", "mid", "odd"]
    # No location supplied: no distance field at all
    assert all("distance" not in s for s in data)


def test_list_services_category_filter(client):
    r = client.get("/services", params={"category": "food"})
    assert _ids(r.json()) == ["mid"]


def test_list_services_text_query_covers_description_and_author(client):
    assert _ids(client.get("/services", params={"query": "SURF"}).json()) == ["near", "noloc"]
    assert _ids(client.get("/services", params={"query": "sipho"}).json()) == ["mid"]


def test_list_services_unknown_category_is_empty(client):
    r = client.get("/services", params={"category": "spaceflight"})
    assert r.status_code == 200
    assert r.json() == []


def test_list_services_distance_sort_nulls_last(client):
    r = client.get(
        "/services",
        params={"lat": CENTER_LAT, "lng": CENTER_LNG, "sortBy": "distance"},
    )
    data = r.json()
    assert _ids(data) == ["near", "mid", "far", "odd", "noloc"]
    assert data[-1]["distance"] is None
    assert abs(data[0]["distance"] - 1.0) < 0.01
    assert data[0]["distance_display"] == "1.0km"


def test_list_services_radius_filter(client):
    r = client.get(
        "/services",
        params={"lat": CENTER_LAT, "lng": CENTER_LNG, "maxDistance": "2"},
    )
    assert _ids(r.json()) == ["near"]


def test_list_services_infinite_radius_drops_only_unlocated(client):
    r = client.get(
        "/services",
        params={"lat": CENTER_LAT, "lng": CENTER_LNG, "maxDistance": "Infinity", "sortBy": "distance"},
    )
    assert r.status_code == 200
    assert _ids(r.json()) == ["near", "mid", "far", "odd"]


def test_list_services_category_is_not_trimmed(client):
    assert client.get("/services", params={"category": " food"}).json() == []
    assert client.get("/services", params={"category": "food "}).json() == []


def test_list_services_query_keeps_surrounding_spaces(client):
    # "Kayak Tours" has no space before "kayak"
    assert client.get("/services", params={"query": " kayak"}).json() == []
    assert _ids(client.get("/services", params={"query": "kayak"}).json()) == ["far"]
    assert _ids(client.get("/services", params={"query": " boards"}).json()) == ["noloc"]


def test_list_services_invalid_numbers_are_ignored(client):
    r = client.get("/services", params={"lat": "abc", "lng": CENTER_LNG, "maxDistance": "NaN", "sortBy": "distance"})
    assert r.status_code == 200
    data = r.json()
    assert _ids(data) == ["far", "near", "noloc", "mid", "odd"]
    assert all("distance" not in s for s in data)


def test_list_services_invalid_radius_keeps_distances(client):
    r = client.get("/services", params={"lat": CENTER_LAT, "lng": CENTER_LNG, "maxDistance": "far"})
    data = r.json()
    assert len(data) == 5
    assert all("distance" in s for s in data)


def test_list_services_missing_file_is_empty(client, tmp_path, monkeypatch):
    monkeypatch.setattr(main, "SERVICES_JSON", tmp_path / "missing.json")
    r = client.get("/services")
    assert r.status_code == 200
    assert r.json() == []


# --- GET /services/{id} ---


def test_get_service_detail(client):
    r = client.get("/services/near")
    assert r.status_code == 200
    data = r.json()
    assert data["title"] == "Surf Lessons"
    assert data["price_display"] == "R100 - R500"
    assert data["location"]["lat"] == pytest.approx(_north(1))
    assert "distance" not in data


def test_get_service_detail_with_distance(client):
    r = client.get("/services/mid", params={"lat": CENTER_LAT, "lng": CENTER_LNG})
    data = r.json()
    assert abs(data["distance"] - 3.0) < 0.01
    assert data["distance_display"] == "3.0km"


def test_get_service_not_found(client):
    r = client.get("/services/does-not-exist")
    assert r.status_code == 404
    assert r.json()["detail"] == "Service not found"


# --- Views ---


def test_post_view_counts_once_per_session(client):
    r1 = client.post("/services/far/views", headers={"X-Session-Id": "session-1"})
    assert r1.status_code == 200
    assert r1.json() == {"service_id": "far", "views": 4, "counted": True}

    r2 = client.post("/services/far/views", headers={"X-Session-Id": "session-1"})
    assert r2.json() == {"service_id": "far", "views": 4, "counted": False}

    r3 = client.post("/services/far/views", headers={"X-Session-Id": "session-2"})
    assert r3.json()["views"] == 5

    assert client.get("/services/far/views").json()["views"] == 5
    listed = {s["id"]: s["views"] for s in client.get("/services").json()}
    assert listed["far"] == 5


def test_views_unknown_service_is_404(client):
    assert client.post("/services/nope/views").status_code == 404
    assert client.get("/services/nope/views").status_code == 404


# --- Categories, map, listing ---


def test_categories_ordered_with_counts(client):
    r = client.get("/categories")
    assert r.status_code == 200
    cats = r.json()["categories"]
    assert [c["category"] for c in cats] == ["surfing", "tours", "food", "transport", "wellness"]
    assert cats[0]["label"] == "Surfing"
    assert all(c["count"] == 1 for c in cats)


def test_services_map_only_located(client):
    r = client.get("/services/map")
    assert r.status_code == 200
    data = r.json()
    assert data["center"] == {"lat": CENTER_LAT, "lng": CENTER_LNG}
    markers = {m["id"]: m for m in data["markers"]}
    assert set(markers) == {"far", "near", "mid", "odd"}
    assert markers["near"]["in_area"] is True
    assert markers["near"]["price_display"] == "R100 - R500"


def test_listing_payload(client):
    r = client.get("/listing", params={"category": "surfing"})
    assert r.status_code == 200
    data = r.json()
    assert data["heading"] == "Surfing Services"
    assert data["total_count"] == 5
    assert data["shown_count"] == 1
    assert data["user_location"] is None
    assert _ids(data["services"]) == ["near"]
    assert len(data["categories"]) == 5


def test_listing_locate_falls_back_when_unavailable(client):
    # No location provider configured in tests
    r = client.get("/listing", params={"locate": "true", "sortBy": "distance"})
    assert r.status_code == 200
    data = r.json()
    assert data["user_location"] is None
    assert data["shown_count"] == 5
    assert all("distance" not in s for s in data["services"])


class _FakeLocationClient:
    def __init__(self, location: Coordinates):
        self.calls = 0
        self.addresses: list[str] = []
        self._location = location

    def provider_for(self, ip: str):
        self.addresses.append(ip)

        async def _provider():
            self.calls += 1
            return self._location

        return _provider


def test_listing_locate_uses_provider_and_caches(client, monkeypatch):
    fake = _FakeLocationClient(Coordinates(CENTER_LAT, CENTER_LNG))
    monkeypatch.setattr(main.app.state, "location_client", fake, raising=False)

    headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
    r = client.get("/listing", params={"locate": "true", "sortBy": "distance", "maxDistance": "4"}, headers=headers)
    data = r.json()
    assert data["user_location"] == {"lat": CENTER_LAT, "lng": CENTER_LNG}
    assert _ids(data["services"]) == ["near", "mid"]

    assert client.get("/location", headers=headers).json()["location"] == {"lat": CENTER_LAT, "lng": CENTER_LNG}
    assert fake.calls == 1
    assert fake.addresses == ["203.0.113.9"]


@pytest.mark.parametrize("forwarded", ["x/../../admin?secret=1", "\x7f", "not-an-ip", ""])
def test_non_ip_client_address_skips_location_lookup(client, monkeypatch, forwarded):
    fake = _FakeLocationClient(Coordinates(CENTER_LAT, CENTER_LNG))
    monkeypatch.setattr(main.app.state, "location_client", fake, raising=False)
    headers = {"X-Forwarded-For": forwarded}

    r = client.get("/listing", params={"locate": "true", "sortBy": "distance"}, headers=headers)
    assert r.status_code == 200
    data = r.json()
    assert data["user_location"] is None
    assert data["shown_count"] == 5
    assert all("distance" not in s for s in data["services"])

    r = client.get("/location", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"location": None}
    assert fake.calls == 0


def test_location_provider_failure_returns_null(client, monkeypatch):
    class _BrokenLocationClient:
        def provider_for(self, ip: str):
            async def _provider():
                raise RuntimeError("provider exploded")

            return _provider

    monkeypatch.setattr(main.app.state, "location_client", _BrokenLocationClient(), raising=False)
    headers = {"X-Forwarded-For": "203.0.113.9"}
    assert client.get("/location", headers=headers).json() == {"location": None}
    r = client.get("/listing", params={"locate": "true"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["user_location"] is None


def test_location_unavailable_returns_null(client):
    r = client.get("/location")
    assert r.status_code == 200
    assert r.json() == {"location": None}


# --- Local login ---


def test_post_local_user(client):
    r = client.post("/auth/local-user", json={"name": "Anika", "email": "anika@example.com"})
    assert r.status_code == 201
    data = r.json()
    assert data["name"] == "Anika"
    assert data["image"].endswith("seed=Anika")
    assert data["id"].isdigit()


def test_post_local_user_missing_fields(client):
    r = client.post("/auth/local-user", json={"name": "", "email": ""})
    assert r.status_code == 422


def test_health_and_metrics(client):
    assert client.get("/health").json() == {"status": "ok"}
    metrics = client.get("/metrics").json()
    assert "requests_total" in metrics
    assert "location_lookups_unavailable" in metrics
