from models import UserRole


async def test_login_returns_token_pair(client, demo_tenant):
    response = await client.post("/api/auth/login", json={"email": "admin@demo-isp.com", "password": "admin123"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["user"]["role"] == "OWNER"
    assert data["tenant"]["slug"] == "demo-isp"

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.json()["data"]["user"]["email"] == "admin@demo-isp.com"


async def test_login_with_wrong_password(client, demo_tenant):
    response = await client.post("/api/auth/login", json={"email": "admin@demo-isp.com", "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


async def test_refresh_token_is_not_an_access_token(client, demo_tenant):
    login = await client.post("/api/auth/login", json={"email": "admin@demo-isp.com", "password": "admin123"})
    refresh_token = login.json()["data"]["refresh_token"]

    rejected = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {refresh_token}"})
    assert rejected.status_code == 401

    refreshed = await client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert refreshed.status_code == 200
    assert refreshed.json()["data"]["access_token"]


async def test_register_creates_isolated_tenant(client, demo_tenant):
    response = await client.post("/api/auth/register", json={
        "tenant_name": "Fiber Co",
        "tenant_slug": "fiber-co",
        "name": "Fiber Owner",
        "email": "owner@fiber-co.com",
        "password": "supersecret"
    })

    assert response.status_code == 201
    token = response.json()["data"]["access_token"]
    headers = {"Authorization": f"Bearer {token}"}

    customers = await client.get("/api/customers", headers=headers)
    assert customers.json()["pagination"]["total"] == 0
    settings = await client.get("/api/settings/invoice_settings", headers=headers)
    assert settings.json()["data"]["value"]["prefix"] == "INV"


async def test_register_with_taken_slug(client, demo_tenant):
    response = await client.post("/api/auth/register", json={
        "tenant_name": "Copycat",
        "tenant_slug": "demo-isp",
        "name": "Someone",
        "email": "someone@copycat.com",
        "password": "supersecret"
    })

    assert response.status_code == 400
    assert response.json()["message"] == "Tenant slug already taken"


async def test_owner_cannot_be_deactivated(client, staff_headers, demo_tenant):
    owner_headers = staff_headers[UserRole.OWNER]
    users = await client.get("/api/users", headers=owner_headers)
    owner = next(u for u in users.json()["data"] if u["role"] == "OWNER")

    response = await client.delete(f"/api/users/{owner['id']}", headers=owner_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot deactivate owner"


async def test_forgot_password_does_not_reveal_accounts(client, demo_tenant):
    response = await client.post("/api/auth/forgot-password", json={"email": "nobody@demo-isp.com"})

    assert response.status_code == 200
    assert response.json()["message"] == "If an account with that email exists, a password reset link has been sent."


async def test_logout_requires_a_token(client, staff_headers):
    response = await client.post("/api/auth/logout", headers=staff_headers[UserRole.CASHIER])

    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"

    anonymous = await client.post("/api/auth/logout")
    assert anonymous.status_code == 401
