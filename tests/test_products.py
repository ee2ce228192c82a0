def test_create_product_starts_fully_available(client):
    category = client.post("/categories", json={"name": "Lighting"}).json()

    r = client.post(
        "/products",
        json={"title": "Lamp", "price": 20, "stock": 4, "category_id": category["id"]},
    )
    assert r.status_code == 201, r.text
    product = r.json()

    assert (product["stock"], product["reserved_stock"], product["available_stock"]) == (4, 0, 4)
    assert product["category_id"] == category["id"]

    movements = client.get(f"/products/{product['id']}/stock-movements").json()
    assert [(m["type"], m["quantity"], m["reason"]) for m in movements] == [("IN", 4, "Initial stock")]


def test_duplicate_category_and_unknown_category(client):
    assert client.post("/categories", json={"name": "Lighting"}).status_code == 201
    assert client.post("/categories", json={"name": "Lighting"}).status_code == 409

    r = client.post(
        "/products",
        json={"title": "Lamp", "price": 20, "category_id": "00000000-0000-0000-0000-000000000001"},
    )
    assert r.status_code == 400


def test_restock_broadcasts_inventory(client, make_product, notifier):
    lamp = make_product(title="Lamp", stock=1, low_stock_alert=5)

    r = client.post(f"/products/{lamp.id}/stock", json={"quantity": 3})
    assert r.status_code == 200
    assert r.json()["available_stock"] == 4

    assert notifier.payloads("inventory_update")[0]["stock"] == 4
    assert notifier.payloads("low_stock_alert")[0]["currentStock"] == 4


def test_update_and_list_products(client, make_product):
    lamp = make_product(title="Lamp", price=20)
    make_product(title="Chair", price=40)

    r = client.patch(f"/products/{lamp.id}", json={"price": 25, "is_active": False})
    assert r.json()["price"] == 25

    titles = [p["title"] for p in client.get("/products").json()]
    assert titles == ["Chair"]
    assert len(client.get("/products", params={"include_inactive": True}).json()) == 2
    assert client.get("/products/00000000-0000-0000-0000-000000000001").status_code == 404
