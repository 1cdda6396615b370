from models import UserRole


async def test_list_with_counts_and_search(client, staff_headers):
    manager = staff_headers[UserRole.MANAGER]

    response = await client.get("/api/customers", params={"q": "smith"}, headers=manager)

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert body["data"][0]["name"] == "John Smith"
    assert body["data"][0]["subscription_count"] == 1
    assert body["data"][0]["ticket_count"] == 0


async def test_filter_by_tag(client, staff_headers):
    response = await client.get("/api/customers", params={"tag": "business"}, headers=staff_headers[UserRole.OWNER])

    assert [c["name"] for c in response.json()["data"]] == ["Tech Solutions LLC"]


async def test_create_rejects_duplicate_phone(client, staff_headers):
    manager = staff_headers[UserRole.MANAGER]
    payload = {
        "name": "Jane Doe",
        "phone": "+1555000111",
        "address": {"city": "Springfield", "zipCode": "62701"},
        "tags": ["new"]
    }

    created = await client.post("/api/customers", json=payload, headers=manager)
    assert created.status_code == 201
    assert created.json()["data"]["address"]["zipCode"] == "62701"
    assert created.json()["data"]["status"] == "ACTIVE"

    duplicate = await client.post("/api/customers", json=payload, headers=manager)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Phone number already exists"


async def test_cashier_cannot_list_customers(client, staff_headers):
    response = await client.get("/api/customers", headers=staff_headers[UserRole.CASHIER])

    assert response.status_code == 403


async def test_delete_is_refused_while_subscription_is_active(client, staff_headers):
    owner = staff_headers[UserRole.OWNER]
    customers = await client.get("/api/customers", params={"q": "smith"}, headers=owner)
    john = customers.json()["data"][0]

    response = await client.delete(f"/api/customers/{john['id']}", headers=owner)

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete customer with active subscriptions"


async def test_detail_includes_subscriptions(client, staff_headers):
    owner = staff_headers[UserRole.OWNER]
    customers = await client.get("/api/customers", params={"q": "Mike"}, headers=owner)
    mike = customers.json()["data"][0]

    response = await client.get(f"/api/customers/{mike['id']}", headers=owner)

    data = response.json()["data"]
    assert [s["username"] for s in data["subscriptions"]] == ["mike_davis"]
    assert data["subscriptions"][0]["plan"]["name"] == "Premium 100Mbps"
    assert data["open_tickets"] == []


async def test_upload_documents_appends_to_customer(client, staff_headers):
    manager = staff_headers[UserRole.MANAGER]
    customers = await client.get("/api/customers", params={"q": "smith"}, headers=manager)
    john = customers.json()["data"][0]

    response = await client.post(
        f"/api/customers/{john['id']}/documents",
        files=[
            ("documents", ("id card.pdf", b"%PDF-1.4 id", "application/pdf")),
            ("documents", ("contract.png", b"\x89PNG contract", "image/png")),
        ],
        headers=manager
    )

    assert response.status_code == 200
    uploaded = response.json()["data"]
    assert [(d["name"], d["type"], d["size"]) for d in uploaded] == [
        ("id card.pdf", "application/pdf", 11),
        ("contract.png", "image/png", 13),
    ]
    assert all(d["path"].startswith(f"documents/{john['id']}-") for d in uploaded)
    assert "uploadedAt" in uploaded[0]

    detail = await client.get(f"/api/customers/{john['id']}", headers=manager)
    assert [d["name"] for d in detail.json()["data"]["documents"]] == ["id card.pdf", "contract.png"]


async def test_upload_rejects_unsupported_file_type(client, staff_headers):
    owner = staff_headers[UserRole.OWNER]
    customers = await client.get("/api/customers", params={"q": "smith"}, headers=owner)
    john = customers.json()["data"][0]

    response = await client.post(
        f"/api/customers/{john['id']}/documents",
        files=[("documents", ("script.exe", b"MZ", "application/octet-stream"))],
        headers=owner
    )

    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid file type")


async def test_upload_to_other_tenants_customer_is_not_found(client, staff_headers, other_headers):
    customers = await client.get("/api/customers", params={"q": "smith"}, headers=staff_headers[UserRole.OWNER])
    john = customers.json()["data"][0]

    response = await client.post(
        f"/api/customers/{john['id']}/documents",
        files=[("documents", ("id.pdf", b"%PDF", "application/pdf"))],
        headers=other_headers
    )

    assert response.status_code == 404
