from bson import ObjectId

SHIPPING = {
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "postalCode": "560001",
    "phone": "+91 98765 43210",
}


def place(client, headers, lines):
    return client.post("/api/orders", headers=headers, json={"orderItems": lines, "shippingInfo": SHIPPING})


def test_order_pricing_example(client, user_headers, make_product):
    shirt = make_product(name="Shirt", price=50)
    cap = make_product(name="Cap", price=75)
    res = place(client, user_headers, [
        {"product": shirt, "quantity": 2, "size": "M", "color": "White"},
        {"product": cap, "quantity": 1},
    ])
    assert res.status_code == 201
    order = res.json()["data"]
    assert order["itemsPrice"] == 175
    assert order["taxPrice"] == 31.5
    assert order["shippingPrice"] == 100
    assert order["totalPrice"] == 306.5
    assert order["orderStatus"] == "Processing"
    assert order["orderItems"][0]["name"] == "Shirt"
    assert order["orderItems"][0]["image"] == "https://img.example.in/linen.jpg"


def test_pricing_follows_settings(client, user_headers, admin_headers, make_product):
    client.put("/api/settings", headers=admin_headers,
               json={"taxRate": 10, "shippingFee": 10, "freeShippingThreshold": 100})
    pid = make_product(price=60)
    order = place(client, user_headers, [{"product": pid, "quantity": 2}]).json()["data"]
    assert order["taxPrice"] == 12
    assert order["shippingPrice"] == 0
    assert order["totalPrice"] == 132


def test_order_prices_frozen_after_catalog_edit(client, user_headers, admin_headers, make_product):
    pid = make_product(price=50)
    order = place(client, user_headers, [{"product": pid, "quantity": 1}]).json()["data"]
    client.put(f"/api/products/{pid}", headers=admin_headers, json={"price": 999, "name": "Renamed"})
    again = client.get(f"/api/orders/{order['id']}", headers=user_headers).json()["data"]
    assert again["orderItems"][0]["price"] == 50
    assert again["orderItems"][0]["name"] == "Linen Shirt"
    assert again["totalPrice"] == order["totalPrice"]


def test_missing_product_aborts_whole_order(client, user_headers, make_product, fake_db):
    pid = make_product()
    res = place(client, user_headers, [
        {"product": pid, "quantity": 1},
        {"product": str(ObjectId()), "quantity": 1},
    ])
    assert res.status_code == 404
    assert fake_db["order"].count_documents({}) == 0


def test_empty_order_rejected(client, user_headers):
    assert place(client, user_headers, []).status_code == 400


def test_checkout_from_cart_clears_cart(client, user_headers, make_product):
    pid = make_product(price=50)
    client.post("/api/cart", headers=user_headers, json={"productId": pid, "quantity": 3, "size": "L"})
    res = client.post("/api/orders", headers=user_headers, json={"shippingInfo": SHIPPING})
    assert res.status_code == 201
    order = res.json()["data"]
    assert order["itemsPrice"] == 150
    assert order["orderItems"][0]["size"] == "L"
    assert client.get("/api/cart", headers=user_headers).json()["data"]["totalItems"] == 0


def test_checkout_with_empty_cart(client, user_headers):
    res = client.post("/api/orders", headers=user_headers, json={"shippingInfo": SHIPPING})
    assert res.status_code == 400


def test_my_orders_and_access(client, user_headers, admin_headers, make_product):
    from conftest import register

    pid = make_product()
    order = place(client, user_headers, [{"product": pid, "quantity": 1}]).json()["data"]
    mine = client.get("/api/orders/myorders", headers=user_headers).json()
    assert mine["count"] == 1

    stranger = register(client, "ravi@mailbox.in")
    assert client.get(f"/api/orders/{order['id']}", headers=stranger).status_code == 403
    assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/orders/myorders", headers=stranger).json()["count"] == 0


def test_admin_list_totals(client, user_headers, admin_headers, make_product):
    pid = make_product(price=50)
    place(client, user_headers, [{"product": pid, "quantity": 1}])
    place(client, user_headers, [{"product": pid, "quantity": 2}])
    body = client.get("/api/orders", headers=admin_headers).json()
    assert body["count"] == 2
    # 50 + 9 + 100 and 100 + 18 + 100
    assert body["totalAmount"] == 377


def test_shipping_decrements_stock(client, user_headers, admin_headers, make_product, fake_db):
    pid = make_product(sizes=[{"size": "M", "stock": 3}, {"size": "L", "stock": 4}])
    order = place(client, user_headers, [{"product": pid, "quantity": 2, "size": "M"}]).json()["data"]

    res = client.put(f"/api/orders/{order['id']}", headers=admin_headers, json={"orderStatus": "Shipped"})
    assert res.status_code == 200
    assert res.json()["data"]["orderStatus"] == "Shipped"
    product = fake_db["product"].find_one({"_id": ObjectId(pid)})
    assert product["stock"] == 5
    assert product["sizes"][0] == {"size": "M", "stock": 1}


def test_shipping_with_insufficient_stock_leaves_it(client, user_headers, admin_headers, make_product, fake_db):
    pid = make_product(stock=1)
    order = place(client, user_headers, [{"product": pid, "quantity": 2}]).json()["data"]
    res = client.put(f"/api/orders/{order['id']}", headers=admin_headers, json={"orderStatus": "Shipped"})
    assert res.status_code == 200
    assert fake_db["product"].find_one({"_id": ObjectId(pid)})["stock"] == 1


def test_delivered_is_terminal(client, user_headers, admin_headers, make_product):
    pid = make_product()
    order = place(client, user_headers, [{"product": pid, "quantity": 1}]).json()["data"]
    url = f"/api/orders/{order['id']}"
    client.put(url, headers=admin_headers, json={"orderStatus": "Shipped"})
    delivered = client.put(url, headers=admin_headers, json={"orderStatus": "Delivered"}).json()["data"]
    assert delivered["deliveredAt"] is not None

    res = client.put(url, headers=admin_headers, json={"orderStatus": "Returned"})
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "You have already delivered this order"}


def test_status_update_rules(client, user_headers, admin_headers, make_product):
    pid = make_product()
    order = place(client, user_headers, [{"product": pid, "quantity": 1}]).json()["data"]
    url = f"/api/orders/{order['id']}"
    assert client.put(url, headers=user_headers, json={"orderStatus": "Shipped"}).status_code == 403
    assert client.put(url, headers=admin_headers, json={"orderStatus": "Teleported"}).status_code == 400
    assert client.put(url, headers=admin_headers, json={"orderStatus": "Cancelled"}).status_code == 200
    assert client.put(url, headers=admin_headers, json={"orderStatus": "Shipped"}).status_code == 400


def test_delete_order(client, user_headers, admin_headers, make_product):
    pid = make_product()
    order = place(client, user_headers, [{"product": pid, "quantity": 1}]).json()["data"]
    assert client.delete(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 404
