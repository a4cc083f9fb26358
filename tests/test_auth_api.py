"""
API tests for registration, login, sessions and health checks.
"""
from conftest import generate_test_user


async def test_register_login_and_me(client):
    user_data = generate_test_user()
    response = await client.post("/auth/register", json=user_data)
    assert response.status_code == 201, response.text
    assert response.json()["user"]["has_used_trial"] is False

    response = await client.post("/auth/register", json=user_data)
    assert response.status_code == 400

    response = await client.post("/auth/login", json={"username": user_data["email"],
                                                      "password": user_data["password"]})
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.json()['access_token']}"}

    me = (await client.get("/auth/me", headers=headers)).json()
    assert me["username"] == user_data["username"]
    assert me["role"] == "user"


async def test_bad_credentials(client):
    user_data = generate_test_user()
    await client.post("/auth/register", json=user_data)

    response = await client.post("/auth/login", json={"username": user_data["username"],
                                                      "password": "wrongpass123"})
    assert response.status_code == 401
    error = response.json()["error"]
    assert error["error_code"] == "UNAUTHORIZED"
    assert error["type"] == "AuthenticationException"


async def test_logout_invalidates_session(client, register_user):
    _, headers = await register_user()
    response = await client.post("/auth/logout", headers=headers)
    assert response.status_code == 200

    response = await client.get("/auth/me", headers=headers)
    assert response.status_code == 401


async def test_refresh_replaces_token(client, register_user):
    _, headers = await register_user()
    response = await client.post("/auth/refresh", headers=headers)
    assert response.status_code == 200
    new_headers = {"Authorization": f"Bearer {response.json()['access_token']}"}

    assert (await client.get("/auth/me", headers=new_headers)).status_code == 200
    assert (await client.get("/auth/me", headers=headers)).status_code == 401


async def test_admin_user_management(client, register_user):
    user_id, headers = await register_user()
    _, admin = await register_user("admin", admin=True)

    assert (await client.get("/users/", headers=headers)).status_code == 403

    users = (await client.get("/users/", params={"has_used_trial": "false"}, headers=admin)).json()
    assert len(users) == 2

    response = await client.put(f"/users/{user_id}/status", params={"is_active": "false"}, headers=admin)
    assert response.status_code == 200
    assert (await client.get("/vocabulary/", headers=headers)).status_code == 403


async def test_health_endpoints(client):
    assert (await client.get("/health")).json()["status"] == "ok"
    assert (await client.get("/health/liveness")).json()["status"] == "alive"

    database = (await client.get("/health/database")).json()
    assert database["status"] == "healthy"
    assert database["user_count"] == 0

    assert (await client.get("/health/readiness")).json() == {"status": "ready"}


async def test_detailed_health_reports_dependencies(client, seeded_plans):
    response = await client.get("/health/detailed")
    assert response.status_code == 200
    report = response.json()
    assert report["overall_status"] in ("healthy", "degraded")
    assert report["database"]["plan_source"] == "table"
    assert report["database"]["active_subscriptions"] == 0
    assert set(report["gemini"]) == {"configured", "model"}
