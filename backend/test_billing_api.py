from models import UserRole


async def test_run_billing_returns_camel_case_result(client, staff_headers):
    response = await client.post(
        "/api/billing/run",
        json={"billingDate": "2024-02-01T00:00:00"},
        headers=staff_headers[UserRole.OWNER]
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Billing run completed"
    data = body["data"]
    assert (data["processed"], data["successful"], data["failed"]) == (2, 2, 0)
    assert data["totalAmount"] == 235.98
    assert data["runId"] is not None
    assert data["invoices"][0]["periodEnd"] == "2024-03-02T00:00:00"


async def test_dry_run_message(client, staff_headers):
    response = await client.post(
        "/api/billing/run",
        json={"billingDate": "2024-02-01T00:00:00", "dryRun": True},
        headers=staff_headers[UserRole.OWNER]
    )

    assert response.json()["message"] == "Billing preview completed"
    assert response.json()["data"]["runId"] is None


async def test_billing_requires_owner_or_admin(client, staff_headers):
    for role in (UserRole.MANAGER, UserRole.SUPPORT, UserRole.CASHIER):
        response = await client.post("/api/billing/run", json={}, headers=staff_headers[role])
        assert response.status_code == 403
        assert response.json()["success"] is False
        assert response.json()["message"] == "Access denied. Insufficient permissions."


async def test_missing_token(client, demo_tenant):
    response = await client.get("/api/billing/status")

    assert response.status_code == 401
    assert response.json()["message"] == "Access denied. No token provided."


async def test_invalid_body_is_a_validation_error(client, staff_headers):
    response = await client.post(
        "/api/billing/run",
        json={"billingDate": "not-a-date"},
        headers=staff_headers[UserRole.OWNER]
    )

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "billingDate"


async def test_run_log_and_tenant_isolation(client, staff_headers, other_headers):
    owner = staff_headers[UserRole.OWNER]
    run = await client.post("/api/billing/run", json={"billingDate": "2024-02-01T00:00:00"}, headers=owner)
    run_id = run.json()["data"]["runId"]

    runs = await client.get("/api/billing/runs", headers=owner)
    assert runs.json()["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}
    assert runs.json()["data"][0]["triggeredBy"].startswith("user:")

    detail = await client.get(f"/api/billing/runs/{run_id}", headers=owner)
    assert len(detail.json()["data"]["items"]) == 2

    hidden = await client.get(f"/api/billing/runs/{run_id}", headers=other_headers)
    assert hidden.status_code == 404
    assert hidden.json()["message"] == "Billing run not found"

    invoices = await client.get("/api/invoices", headers=other_headers)
    assert invoices.json()["pagination"]["total"] == 0


async def test_preview_and_status(client, staff_headers):
    owner = staff_headers[UserRole.OWNER]

    preview = await client.get("/api/billing/preview", params={"date": "2024-02-01T00:00:00"}, headers=owner)
    assert preview.json()["data"]["summary"]["totalSubscriptions"] == 2

    status = await client.get("/api/billing/status", headers=owner)
    assert status.json()["data"]["status"] == "PENDING"


async def test_cashier_lists_invoices_and_records_payment(client, staff_headers):
    await client.post(
        "/api/billing/run", json={"billingDate": "2024-02-01T00:00:00"}, headers=staff_headers[UserRole.OWNER]
    )
    cashier = staff_headers[UserRole.CASHIER]

    invoices = await client.get("/api/invoices", params={"status": "PENDING"}, headers=cashier)
    assert invoices.json()["pagination"]["total"] == 2
    invoice = next(i for i in invoices.json()["data"] if i["total"] == 58.99)
    assert invoice["customer"]["name"] == "John Smith"

    payment = await client.post(
        "/api/payments",
        json={"invoice_id": invoice["id"], "method": "CASH", "amount": 58.99},
        headers=cashier
    )
    assert payment.status_code == 201

    detail = await client.get(f"/api/invoices/{invoice['id']}", headers=cashier)
    assert detail.json()["data"]["status"] == "PAID"
    assert len(detail.json()["data"]["payments"]) == 1


async def test_invoice_pdf_download(client, staff_headers):
    owner = staff_headers[UserRole.OWNER]
    run = await client.post("/api/billing/run", json={"billingDate": "2024-02-01T00:00:00"}, headers=owner)
    invoice = run.json()["data"]["invoices"][0]

    response = await client.get(f"/api/invoices/{invoice['id']}/pdf", headers=owner)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == f'attachment; filename="invoice-{invoice["number"]}.pdf"'
