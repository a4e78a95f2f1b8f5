"""Integration tests for API endpoints."""

from datetime import datetime

import pytest
from bson import ObjectId

from tours_api.services.tour_service import TourService

BASE = "/api/v1/tours"


@pytest.mark.asyncio
async def test_create_tour_endpoint(test_client, sample_tour_data):
    """Test the tour creation endpoint."""
    response = await test_client.post(BASE, json=sample_tour_data)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["message"] == "New tour created successfully"
    tour = body["data"]["tour"]
    assert tour["name"] == sample_tour_data["name"]
    assert tour["slug"] == "northernlightsadventure"
    assert tour["startDates"][0] == "2024-03-01T09:00:00"
    assert "_id" in tour


@pytest.mark.asyncio
async def test_create_tour_invalid_data(test_client, sample_tour_data):
    """Test tour creation with invalid data."""
    response = await test_client.post(BASE, json={**sample_tour_data, "difficulty": "extreme"})

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "fail"
    assert body["message"] == "Invalid input data. Difficulty is either: easy, medium or difficult"


@pytest.mark.asyncio
async def test_create_tour_discount_rules(test_client, sample_tour_data):
    rejected = await test_client.post(BASE, json={**sample_tour_data, "priceDiscount": 2000})
    accepted = await test_client.post(BASE, json={**sample_tour_data, "priceDiscount": 100})

    assert rejected.status_code == 400
    assert accepted.status_code == 201


@pytest.mark.asyncio
async def test_create_tour_duplicate(test_client, sample_tour_data):
    await test_client.post(BASE, json=sample_tour_data)

    response = await test_client.post(BASE, json=sample_tour_data)

    assert response.status_code == 400
    assert response.json()["message"].startswith("Duplicate field value")


@pytest.mark.asyncio
async def test_create_tour_rejects_non_object_body(test_client):
    response = await test_client.post(BASE, json=["not", "a", "tour"])

    assert response.status_code == 400
    assert response.json()["status"] == "fail"


@pytest.mark.asyncio
async def test_get_all_tours_envelope(test_client, seed_tours, make_tour):
    seed_tours(*(make_tour(i) for i in range(3)))

    response = await test_client.get(BASE)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["results"] == 3
    assert len(body["data"]["tours"]) == 3
    assert "message" not in body


@pytest.mark.asyncio
async def test_get_all_tours_query_string(test_client, seed_tours, make_tour):
    seed_tours(*(make_tour(i, price=100 * (i + 1)) for i in range(6)))

    response = await test_client.get(
        f"{BASE}?price[gte]=300&sort=-price&fields=name,price&limit=2&page=1"
    )

    assert response.status_code == 200
    tours = response.json()["data"]["tours"]
    assert [tour["price"] for tour in tours] == [600, 500]
    assert all(set(tour) == {"_id", "name", "price"} for tour in tours)


@pytest.mark.asyncio
async def test_get_all_tours_page_not_found(test_client, seed_tours, make_tour, production_mode):
    seed_tours(*(make_tour(i) for i in range(25)))

    response = await test_client.get(f"{BASE}?page=100&limit=10")

    assert response.status_code == 404
    assert response.json() == {"status": "fail", "message": "This page does not exist"}


@pytest.mark.asyncio
async def test_get_all_tours_bad_filter_value(test_client, production_mode):
    response = await test_client.get(f"{BASE}?duration[lt]=soon")

    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "Invalid duration: soon"}


@pytest.mark.asyncio
async def test_top_five_tours_alias(test_client, seed_tours, make_tour):
    seed_tours(*(make_tour(i, ratingsAverage=4.0 + i / 10, price=500 - i) for i in range(8)))

    response = await test_client.get(f"{BASE}/top-5-tours?limit=50")

    assert response.status_code == 200
    body = response.json()
    assert body["results"] == 5
    tours = body["data"]["tours"]
    assert [tour["ratingsAverage"] for tour in tours] == pytest.approx([4.7, 4.6, 4.5, 4.4, 4.3])
    assert set(tours[0]) == {"_id", "name", "price", "ratingsAverage", "summary", "difficulty"}


@pytest.mark.asyncio
async def test_get_tour_by_id(test_client, sample_tour_data):
    created = (await test_client.post(BASE, json=sample_tour_data)).json()["data"]["tour"]

    response = await test_client.get(f"{BASE}/{created['_id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["tour"] == created


@pytest.mark.asyncio
async def test_get_tour_not_found(test_client, production_mode):
    response = await test_client.get(f"{BASE}/{ObjectId()}")

    assert response.status_code == 404
    assert response.json() == {"status": "fail", "message": "No tour found with that id"}


@pytest.mark.asyncio
async def test_get_tour_malformed_id(test_client, production_mode):
    response = await test_client.get(f"{BASE}/12345")

    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "Invalid _id: 12345"}


@pytest.mark.asyncio
async def test_update_tour_endpoint(test_client, sample_tour_data):
    created = (await test_client.post(BASE, json=sample_tour_data)).json()["data"]["tour"]

    response = await test_client.patch(f"{BASE}/{created['_id']}", json={"price": 1500})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Tour updated successfully"
    assert body["data"]["tour"]["price"] == 1500


@pytest.mark.asyncio
async def test_update_tour_not_found(test_client):
    response = await test_client.patch(f"{BASE}/{ObjectId()}", json={"price": 1500})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_tour_endpoint(test_client, sample_tour_data):
    created = (await test_client.post(BASE, json=sample_tour_data)).json()["data"]["tour"]

    response = await test_client.delete(f"{BASE}/{created['_id']}")
    again = await test_client.delete(f"{BASE}/{created['_id']}")

    assert response.status_code == 204
    assert response.content == b""
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_tour_stats_endpoint(test_client, seed_tours, make_tour):
    seed_tours(
        make_tour(0, difficulty="easy", ratingsAverage=4.0),
        make_tour(1, difficulty="medium", ratingsAverage=4.6),
        make_tour(2, difficulty="medium", ratingsAverage=4.8),
    )

    response = await test_client.get(f"{BASE}/tour-stats")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Tour stats loaded successfully!"
    assert len(body["data"]) == 1
    assert body["data"][0]["_id"] == "MEDIUM"
    assert body["data"][0]["numTours"] == 2


@pytest.mark.asyncio
async def test_monthly_plan_endpoint(test_client, seed_tours, make_tour):
    seed_tours(make_tour(0, startDates=[datetime(2024, 3, 1), datetime(2024, 3, 15), datetime(2025, 1, 1)]))

    response = await test_client.get(f"{BASE}/monthly-plan/2024")

    assert response.status_code == 200
    rows = response.json()["data"]
    assert len(rows) == 1
    assert rows[0]["month"] == 3
    assert rows[0]["numTourStats"] == 2


@pytest.mark.asyncio
async def test_monthly_plan_malformed_year(test_client, seed_tours, make_tour):
    seed_tours(make_tour(0, startDates=[datetime(2024, 3, 1)]))

    response = await test_client.get(f"{BASE}/monthly-plan/someday")

    assert response.status_code == 200
    assert response.json()["data"] == []


@pytest.mark.asyncio
async def test_unknown_route(test_client, production_mode):
    response = await test_client.get("/api/v1/users")

    assert response.status_code == 404
    assert response.json() == {
        "status": "fail",
        "message": "Can't find /api/v1/users on this server!",
    }


@pytest.mark.asyncio
async def test_operational_error_in_development_includes_detail(test_client, development_mode):
    response = await test_client.get(f"{BASE}/{ObjectId()}")

    body = response.json()
    assert response.status_code == 404
    assert body["status"] == "fail"
    assert body["message"] == "No tour found with that id"
    assert body["error"]["name"] == "NotFoundError"
    assert "stack" in body


@pytest.mark.asyncio
async def test_unknown_error_is_generic_in_production(test_client, monkeypatch, production_mode):
    async def broken(self):
        raise RuntimeError("connection pool exploded")

    monkeypatch.setattr(TourService, "tour_stats", broken)

    response = await test_client.get(f"{BASE}/tour-stats")

    assert response.status_code == 500
    assert response.json() == {"status": "error", "message": "Something went very wrong"}


@pytest.mark.asyncio
async def test_unknown_error_in_development_exposes_stack(test_client, monkeypatch, development_mode):
    async def broken(self):
        raise RuntimeError("connection pool exploded")

    monkeypatch.setattr(TourService, "tour_stats", broken)

    response = await test_client.get(f"{BASE}/tour-stats")

    body = response.json()
    assert response.status_code == 500
    assert body["status"] == "error"
    assert body["message"] == "connection pool exploded"
    assert body["error"]["name"] == "RuntimeError"
    assert "RuntimeError" in body["stack"]


@pytest.mark.asyncio
async def test_request_id_header(test_client):
    response = await test_client.get(BASE, headers={"X-Request-ID": "abc-123"})

    assert response.headers["X-Request-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test the Prometheus metrics endpoint."""
    await test_client.get(BASE)

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text


@pytest.mark.asyncio
@pytest.mark.parametrize("price", ["NaN", "Infinity"])
async def test_create_tour_rejects_non_finite_price(test_client, tours_collection, sample_tour_data, price):
    response = await test_client.post(BASE, json={**sample_tour_data, "price": price})

    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid input data. Cast to Number failed")
    assert tours_collection.count_documents({}) == 0


@pytest.mark.asyncio
async def test_update_tour_cannot_clear_required_field(test_client, sample_tour_data, production_mode):
    created = (await test_client.post(BASE, json=sample_tour_data)).json()["data"]["tour"]

    response = await test_client.patch(f"{BASE}/{created['_id']}", json={"price": None})

    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "Invalid input data. A tour must have a price"}


@pytest.mark.asyncio
async def test_get_all_tours_oversized_limit_falls_back(test_client, seed_tours, make_tour):
    seed_tours(*(make_tour(i) for i in range(3)))

    response = await test_client.get(f"{BASE}?limit=99999999999999999999")

    assert response.status_code == 200
    assert response.json()["results"] == 3


@pytest.mark.asyncio
async def test_get_all_tours_fields_without_id(test_client, seed_tours, make_tour):
    seed_tours(make_tour(0))

    response = await test_client.get(f"{BASE}?fields=name,-_id")

    assert response.status_code == 200
    assert response.json()["data"]["tours"] == [{"name": make_tour(0)["name"]}]


@pytest.mark.asyncio
async def test_error_envelope_documented_for_tour_routes(test_app):
    schema = test_app.openapi()

    assert "ErrorResponse" in schema["components"]["schemas"]
    responses = schema["paths"]["/api/v1/tours/{tour_id}"]["get"]["responses"]
    assert responses["404"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
