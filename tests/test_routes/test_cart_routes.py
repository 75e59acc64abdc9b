import pytest

BUYER_HEADERS = {"X-User-Id": "42"}
OTHER_HEADERS = {"X-User-Id": "43"}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_cart_requires_user(client):
    response = await client.get("/api/cart")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_empty_cart(client):
    response = await client.get("/api/cart", headers=BUYER_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == 42
    assert body["items"] == []
    assert body["subtotal"] == 0


@pytest.mark.asyncio
async def test_add_update_and_remove_item(client, make_record):
    record = await make_record(quantity=3, price=12.5)
    record_id = record.id

    response = await client.post("/api/cart/items", json={"record_id": record_id, "quantity": 2}, headers=BUYER_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["total_quantity"] == 2
    assert body["subtotal"] == 25.0
    assert body["items"][0]["record"]["id"] == record_id
    item_id = body["items"][0]["id"]

    response = await client.put(f"/api/cart/items/{item_id}", json={"quantity": 3}, headers=BUYER_HEADERS)
    assert response.status_code == 200
    assert response.json()["total_quantity"] == 3

    response = await client.delete(f"/api/cart/items/{item_id}", headers=BUYER_HEADERS)
    assert response.status_code == 200
    assert response.json()["items"] == []


@pytest.mark.asyncio
async def test_add_item_over_stock_is_conflict(client, make_record):
    record = await make_record(quantity=1)

    response = await client.post("/api/cart/items", json={"record_id": record.id, "quantity": 2}, headers=BUYER_HEADERS)

    assert response.status_code == 409
    assert "Only 1 available" in response.json()["detail"]


@pytest.mark.asyncio
async def test_add_unknown_record_is_not_found(client):
    response = await client.post("/api/cart/items", json={"record_id": 9999}, headers=BUYER_HEADERS)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_add_zero_quantity_is_bad_request(client, make_record):
    record = await make_record()

    response = await client.post("/api/cart/items", json={"record_id": record.id, "quantity": 0}, headers=BUYER_HEADERS)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_other_users_item_is_forbidden(client, make_record):
    record = await make_record(quantity=2)
    response = await client.post("/api/cart/items", json={"record_id": record.id}, headers=BUYER_HEADERS)
    item_id = response.json()["items"][0]["id"]

    response = await client.put(f"/api/cart/items/{item_id}", json={"quantity": 2}, headers=OTHER_HEADERS)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_merge_guest_cart(client, make_record):
    record = await make_record(quantity=4)
    record_id = record.id
    await client.post("/api/cart/items", json={"record_id": record_id, "quantity": 3}, headers=BUYER_HEADERS)

    response = await client.post(
        "/api/cart/merge",
        json={"items": [{"record_id": record_id, "quantity": 2}, {"record_id": 424242, "quantity": 1}]},
        headers=BUYER_HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["cart"]["items"][0]["quantity"] == 4
    assert body["summary"]["capped"] == 1
    assert body["summary"]["skipped"] == 1
