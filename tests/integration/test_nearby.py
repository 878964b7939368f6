import math

import pytest
from sqlalchemy import func

from app.extensions import db
from app.geo import destination_point, haversine_m
from app.models.pet import Pet
from app.pets import search

from app.cli import BASE_LAT, BASE_LNG

# name -> (km from base, bearing)
RING = {
    "Near": (2, 45),
    "Five": (5, 90),
    "Hosur": (25, 150),
    "Kolar": (50, 70),
    "Chennai": (500, 100),
}


@pytest.fixture()
def ring(sample_data, make_pet):
    owner = sample_data["owner"]
    ids = {"Buddy": sample_data["pet_id"]}  # at the base point
    for minutes, (name, (km, bearing)) in enumerate(RING.items(), start=10):
        lat, lng = destination_point(BASE_LAT, BASE_LNG, km, bearing)
        species = "cat" if name in ("Five", "Kolar") else "dog"
        ids[name] = make_pet(owner, name=name, species=species, lat=lat, lng=lng, minutes=minutes)
    return ids


def _nearby(client, **params):
    params.setdefault("latitude", BASE_LAT)
    params.setdefault("longitude", BASE_LNG)
    return client.get("/api/pets/nearby", query_string=params)


def _names(rv):
    return [p["name"] for p in rv.get_json()["data"]]


def test_nearest_first(client, ring):
    rv = _nearby(client)
    assert rv.status_code == 200
    assert rv.headers["X-Search-Mode"] == "geo"
    body = rv.get_json()
    assert _names(rv) == ["Buddy", "Near", "Five", "Hosur", "Kolar", "Chennai"]
    distances = [p["distance"] for p in body["data"]]
    assert distances == sorted(distances)
    assert body["data"][0]["distanceInKm"] == 0
    assert body["data"][1]["distanceInKm"] == 2.0
    assert all(p["distanceInKm"] >= 0 for p in body["data"])

def test_farthest_first(client, ring):
    rv = _nearby(client, sort="distance", sortDirection="desc")
    distances = [p["distance"] for p in rv.get_json()["data"]]
    assert distances == sorted(distances, reverse=True)
    assert _names(rv)[0] == "Chennai"

def test_unknown_sort_means_nearest(client, ring):
    rv = _nearby(client, sort="whatever")
    assert _names(rv)[:2] == ["Buddy", "Near"]

def test_created_at_sorts(client, ring):
    newest = _names(_nearby(client, sort="-createdAt"))
    oldest = _names(_nearby(client, sort="createdAt"))
    assert newest == ["Chennai", "Kolar", "Hosur", "Five", "Near", "Buddy"]
    assert oldest == list(reversed(newest))
    # still annotated on the geo path
    assert "distanceInKm" in _nearby(client, sort="createdAt").get_json()["data"][0]

def test_radius_excludes_farther_listings(client, ring):
    rv = _nearby(client, distance=10)
    body = rv.get_json()
    assert _names(rv) == ["Buddy", "Near", "Five"]
    assert body["total"] == 3
    assert all(p["distance"] <= 10 * 1000 for p in body["data"])

def test_zero_radius_keeps_exact_matches_only(client, ring):
    rv = _nearby(client, distance=0)
    assert _names(rv) == ["Buddy"]

def test_radius_boundary_in_database(client, sample_data, make_pet):
    owner = sample_data["owner"]
    lat, lng = destination_point(BASE_LAT, BASE_LNG, 10, 0)
    make_pet(owner, name="Edge", lat=lat, lng=lng)
    far_lat, far_lng = destination_point(BASE_LAT, BASE_LNG, 10.001, 0)
    make_pet(owner, name="Beyond", lat=far_lat, lng=far_lng)

    # same argument order as the SQL function, so the value is bit-identical
    edge_m = haversine_m(lat, lng, BASE_LAT, BASE_LNG)
    assert edge_m == pytest.approx(10_000, abs=1e-6)

    # smallest radius (km) whose meter value still reaches the edge
    radius = edge_m / 1000
    while radius * 1000 < edge_m:
        radius = math.nextafter(radius, math.inf)
    while math.nextafter(radius, -math.inf) * 1000 >= edge_m:
        radius = math.nextafter(radius, -math.inf)
    radius_below = math.nextafter(radius, -math.inf)

    rv = _nearby(client, distance=repr(radius))
    body = rv.get_json()
    assert _names(rv) == ["Buddy", "Edge"]
    assert body["data"][1]["distance"] == edge_m
    assert body["data"][1]["distanceInKm"] == 10.0

    assert _names(_nearby(client, distance=repr(radius_below))) == ["Buddy"]
    assert _names(_nearby(client, distance="10.0005")) == ["Buddy", "Edge"]

def test_without_distance_nothing_is_excluded(client, ring):
    rv = _nearby(client)
    body = rv.get_json()
    assert body["total"] == 6
    assert "Chennai" in _names(rv)

def test_pagination_counts_are_page_independent(client, ring):
    seen = []
    totals = set()
    for page in (1, 2, 3, 4):
        body = _nearby(client, limit=4, page=page).get_json()
        totals.add((body["total"], body["totalPages"]))
        assert body["currentPage"] == page
        assert body["count"] == len(body["data"])
        seen.extend(p["id"] for p in body["data"])
    assert totals == {(6, math.ceil(6 / 4))}
    assert len(seen) == len(set(seen)) == 6

@pytest.mark.parametrize("params", [{"page": str(10**20)}, {"limit": str(10**20)}])
def test_oversized_pagination_is_not_an_error(client, ring, params):
    rv = _nearby(client, **params)
    assert rv.status_code == 200
    assert rv.headers["X-Search-Mode"] == "geo"
    body = rv.get_json()
    assert body["currentPage"] == 1
    assert body["total"] == 6
    assert body["count"] == 6

    rv = client.get("/api/pets", query_string=params)
    assert rv.status_code == 200
    assert rv.get_json()["count"] == 6

def test_default_nearby_limit_is_twelve(client, sample_data, make_pet):
    for i in range(13):
        make_pet(sample_data["owner"], name=f"Pup{i}")
    body = _nearby(client).get_json()
    assert body["count"] == 12
    assert body["total"] == 14
    assert body["totalPages"] == 2

def test_repeated_query_is_identical(client, ring, make_pet, sample_data):
    # same distance as Buddy; order must still be stable
    make_pet(sample_data["owner"], name="Twin")
    first = _nearby(client, limit=3).get_json()
    second = _nearby(client, limit=3).get_json()
    assert first == second

def test_species_filter_is_case_insensitive(client, ring):
    rv = _nearby(client, species="CAT")
    assert _names(rv) == ["Five", "Kolar"]

def test_name_search(client, ring):
    assert _names(_nearby(client, search="  os ")) == ["Hosur"]
    assert _names(_nearby(client, search="   ")) == _names(_nearby(client))

def test_name_search_treats_wildcards_literally(client, sample_data, make_pet):
    make_pet(sample_data["owner"], name="100% Good Boy")
    assert _names(_nearby(client, search="%")) == ["100% Good Boy"]

def test_name_search_folds_non_ascii_case(client, sample_data, make_pet):
    make_pet(sample_data["owner"], name="Éclair")
    make_pet(sample_data["owner"], name="Straße")
    assert _names(_nearby(client, search="éclair")) == ["Éclair"]
    assert _names(_nearby(client, search="ÉCL")) == ["Éclair"]
    assert _names(_nearby(client, search="STRASSE")) == ["Straße"]
    assert _names(client.get("/api/pets", query_string={"search": "éclair"})) == ["Éclair"]

def test_status_defaults_to_available(client, sample_data, make_pet):
    make_pet(sample_data["owner"], name="Gone", status="adopted")
    assert "Gone" not in _names(_nearby(client))
    assert _names(_nearby(client, status="adopted")) == ["Gone"]

def test_listings_without_coordinates_are_skipped(client, sample_data, make_pet):
    make_pet(sample_data["owner"], name="Nowhere", lat=None, lng=None)
    rv = _nearby(client)
    assert "Nowhere" not in _names(rv)
    assert rv.get_json()["total"] == 1

def test_owner_enrichment(client, sample_data, make_pet):
    make_pet(None, name="Orphan", minutes=99)
    data = {p["name"]: p for p in _nearby(client).get_json()["data"]}
    assert data["Buddy"]["owner"] == {
        "id": sample_data["owner"].id,
        "name": "Shelter",
        "email": "shelter@example.com",
        "phone": "555-0100",
    }
    assert data["Orphan"]["owner"] is None

@pytest.mark.parametrize("params", [
    {"latitude": None, "longitude": None},
    {"latitude": "12.9", "longitude": None},
])
def test_missing_coordinates(client, sample_data, params):
    query = {k: v for k, v in params.items() if v is not None}
    rv = client.get("/api/pets/nearby", query_string=query)
    assert rv.status_code == 400
    assert rv.get_json() == {"success": False, "message": "Please provide latitude and longitude"}

@pytest.mark.parametrize("lat,lng", [("abc", "77.7"), ("95", "77.7"), ("12.9", "-190")])
def test_invalid_coordinates(client, sample_data, lat, lng):
    rv = client.get("/api/pets/nearby", query_string={"latitude": lat, "longitude": lng})
    assert rv.status_code == 400
    assert rv.get_json()["message"] == "Invalid coordinates"


@pytest.fixture()
def broken_geo(monkeypatch):
    def _no_spatial_support(lat, lng):
        return func.geo_distance_unavailable(Pet.latitude, Pet.longitude, lat, lng)
    monkeypatch.setattr(search, "distance_expr", _no_spatial_support)


def test_fallback_when_geo_query_fails(client, ring, broken_geo, caplog):
    rv = _nearby(client, sort="distance", limit=4, species="dog")
    assert rv.status_code == 200
    assert rv.headers["X-Search-Mode"] == "fallback"
    body = rv.get_json()
    assert _names(rv) == ["Chennai", "Hosur", "Near", "Buddy"]
    assert all("distanceInKm" not in p for p in body["data"])
    assert body["total"] == 4
    assert body["totalPages"] == 1
    assert "nearby search failed" in caplog.text

def test_fallback_paginates(client, ring, broken_geo):
    body = _nearby(client, limit=4, page=2).get_json()
    assert body["total"] == 6
    assert body["currentPage"] == 2
    assert [p["name"] for p in body["data"]] == ["Near", "Buddy"]

def test_fallback_failure_is_server_error(client, ring, broken_geo, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("database gone")
    monkeypatch.setattr(search, "list_pets", _boom)
    rv = _nearby(client)
    assert rv.status_code == 500
    assert rv.get_json() == {"success": False, "message": "Server Error"}

def test_session_usable_after_fallback(client, ring, broken_geo):
    _nearby(client)
    assert db.session.query(Pet).count() == 6
