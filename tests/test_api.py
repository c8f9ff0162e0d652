import pytest
from fastapi.testclient import TestClient

from auth import issue_token
from database import Database
from main import create_app
from periods import add_months, month_key
from stats import local_today


@pytest.fixture
def client():
    database = Database("sqlite://")
    database.create_schema()
    with TestClient(create_app(database)) as test_client:
        yield test_client
    database.dispose()


def _register(client: TestClient, email: str = "ana@example.com") -> dict[str, str]:
    resp = client.post(
        "/api/auth/register",
        json={"name": "Ana", "email": email, "password": "hunter22"},
    )
    assert resp.status_code == 201, resp.text
    token = resp.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}


def _category(client: TestClient, headers, name: str, type_: str) -> int:
    resp = client.post(
        "/api/categories", json={"name": name, "type": type_}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["id"]


def _transaction(
    client: TestClient, headers, category_id: int, type_: str, cents: int, on: str
) -> None:
    resp = client.post(
        "/api/transactions",
        json={
            "date": on,
            "type": type_,
            "amount_cents": cents,
            "category_id": category_id,
            "note": "",
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.text


def test_health_check(client: TestClient) -> None:
    assert client.get("/").status_code == 200


def test_login_and_me(client: TestClient) -> None:
    _register(client)

    resp = client.post(
        "/api/auth/login", json={"email": "ana@example.com", "password": "hunter22"}
    )
    assert resp.status_code == 200
    headers = {"Authorization": f"Bearer {resp.json()['data']['token']}"}
    assert client.get("/api/auth/me", headers=headers).json()["data"]["email"] == (
        "ana@example.com"
    )

    bad = client.post(
        "/api/auth/login", json={"email": "ana@example.com", "password": "nope"}
    )
    assert bad.status_code == 401
    assert bad.json() == {"success": False, "error": "Invalid credentials"}


def test_profile_update_and_password_change(client: TestClient) -> None:
    headers = _register(client)
    _register(client, "bo@example.com")

    resp = client.put(
        "/api/auth/profile",
        json={"name": "Ana Maria", "email": "Ana.M@Example.com"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["email"] == "ana.m@example.com"
    assert client.get("/api/auth/me", headers=headers).json()["data"]["name"] == (
        "Ana Maria"
    )

    taken = client.put(
        "/api/auth/profile", json={"email": "bo@example.com"}, headers=headers
    )
    assert taken.status_code == 400
    assert taken.json() == {"success": False, "error": "Email already registered"}

    wrong = client.put(
        "/api/auth/password",
        json={"current_password": "nope", "new_password": "s3cret-new"},
        headers=headers,
    )
    assert wrong.status_code == 401

    changed = client.put(
        "/api/auth/password",
        json={"current_password": "hunter22", "new_password": "s3cret-new"},
        headers=headers,
    )
    assert changed.json() == {"success": True, "message": "Password updated"}

    old = client.post(
        "/api/auth/login", json={"email": "ana.m@example.com", "password": "hunter22"}
    )
    assert old.status_code == 401
    new = client.post(
        "/api/auth/login",
        json={"email": "ana.m@example.com", "password": "s3cret-new"},
    )
    assert new.status_code == 200


def test_profile_routes_require_a_token(client: TestClient) -> None:
    resp = client.put("/api/auth/profile", json={"name": "Nobody"})
    assert resp.status_code == 401


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer not-a-token"}, {"Authorization": "Basic abc"}],
)
def test_stats_require_a_valid_token(client: TestClient, headers) -> None:
    resp = client.get("/api/stats/overview", headers=headers)

    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_stats_endpoints_over_sample_ledger(client: TestClient) -> None:
    headers = _register(client)
    food = _category(client, headers, "Food", "expense")
    salary = _category(client, headers, "Salary", "income")
    _transaction(client, headers, food, "expense", 50_00, "2024-01-15")
    _transaction(client, headers, salary, "income", 1000_00, "2024-01-31")
    _transaction(client, headers, food, "expense", 30_00, "2024-02-01")

    overview = client.get(
        "/api/stats/overview",
        params={"start": "2024-01-01", "end": "2024-01-31"},
        headers=headers,
    )
    assert overview.status_code == 200
    assert overview.json() == {
        "success": True,
        "data": {
            "total_income_cents": 1000_00,
            "total_expense_cents": 50_00,
            "balance_cents": 950_00,
            "transaction_count": 2,
            "category_count": 2,
        },
    }

    breakdown = client.get(
        "/api/stats/expenses-by-category",
        params={"start": "2024-01-01", "end": "2024-02-28"},
        headers=headers,
    )
    assert breakdown.json()["data"] == [
        {
            "category_id": food,
            "category_name": "Food",
            "category_color": "#4CAF50",
            "total_cents": 80_00,
        }
    ]


def test_monthly_summary_is_dense_and_ends_this_month(client: TestClient) -> None:
    headers = _register(client)
    food = _category(client, headers, "Food", "expense")
    today = local_today()
    _transaction(client, headers, food, "expense", 12_34, today.isoformat())

    resp = client.get(
        "/api/stats/monthly-summary", params={"months": 3}, headers=headers
    )

    data = resp.json()["data"]
    assert len(data) == 4
    first = add_months(today, -3)
    assert data[0]["month"] == month_key(first.year, first.month)
    assert data[-1] == {
        "month": month_key(today.year, today.month),
        "income_cents": 0,
        "expense_cents": 12_34,
    }

    sparse = client.get(
        "/api/stats/monthly-summary",
        params={"months": 3, "dense": "false"},
        headers=headers,
    )
    assert len(sparse.json()["data"]) == 1


@pytest.mark.parametrize(
    "path, params",
    [
        ("/api/stats/monthly-summary", {"months": "0"}),
        ("/api/stats/monthly-summary", {"months": "six"}),
        ("/api/stats/monthly-summary", {"months": "99999999999999999999"}),
        ("/api/stats/monthly-summary", {"months": "1000000000000"}),
        ("/api/stats/overview", {"start": "2024-01-15garbage"}),
        ("/api/stats/overview", {"start": "2024-13-01"}),
        ("/api/stats/expenses-by-category", {"end": "soon"}),
    ],
)
def test_invalid_filters_are_rejected(client: TestClient, path, params) -> None:
    headers = _register(client)

    resp = client.get(path, params=params, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_inverted_range_returns_empty_results(client: TestClient) -> None:
    headers = _register(client)
    food = _category(client, headers, "Food", "expense")
    _transaction(client, headers, food, "expense", 5_00, "2024-01-15")
    params = {"start": "2024-02-01", "end": "2024-01-01"}

    overview = client.get("/api/stats/overview", params=params, headers=headers)
    breakdown = client.get(
        "/api/stats/expenses-by-category", params=params, headers=headers
    )

    assert overview.json()["data"]["total_expense_cents"] == 0
    assert overview.json()["data"]["category_count"] == 1
    assert breakdown.json()["data"] == []


def test_users_cannot_see_each_other(client: TestClient) -> None:
    ana = _register(client)
    bo = _register(client, "bo@example.com")
    food = _category(client, ana, "Food", "expense")
    _transaction(client, ana, food, "expense", 5_00, "2024-01-15")

    assert client.get(f"/api/categories/{food}", headers=bo).status_code == 404
    overview = client.get("/api/stats/overview", headers=bo).json()["data"]
    assert overview["total_expense_cents"] == 0
    assert overview["category_count"] == 0
    assert client.get("/api/transactions", headers=bo).json()["data"] == []


def test_transaction_crud_and_listing(client: TestClient) -> None:
    headers = _register(client)
    food = _category(client, headers, "Food", "expense")
    salary = _category(client, headers, "Salary", "income")
    _transaction(client, headers, food, "expense", 3_00, "2024-03-01")
    _transaction(client, headers, food, "expense", 4_00, "2024-03-02")

    mismatch = client.post(
        "/api/transactions",
        json={
            "date": "2024-03-03",
            "type": "expense",
            "amount_cents": 100,
            "category_id": salary,
        },
        headers=headers,
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["error"] == "Category type mismatch"

    negative = client.post(
        "/api/transactions",
        json={
            "date": "2024-03-03",
            "type": "expense",
            "amount_cents": -5,
            "category_id": food,
        },
        headers=headers,
    )
    assert negative.status_code == 422

    listing = client.get(
        "/api/transactions", params={"limit": 1, "page": 2}, headers=headers
    ).json()
    assert listing["pagination"] == {"page": 2, "limit": 1, "total": 2}
    assert listing["data"][0]["date"] == "2024-03-01"
    assert listing["data"][0]["category"]["name"] == "Food"

    txn_id = listing["data"][0]["id"]
    updated = client.put(
        f"/api/transactions/{txn_id}",
        json={
            "date": "2024-03-05",
            "type": "expense",
            "amount_cents": 9_00,
            "category_id": food,
            "note": "dinner",
        },
        headers=headers,
    )
    assert updated.json()["data"]["amount_cents"] == 9_00

    assert client.delete(f"/api/transactions/{txn_id}", headers=headers).status_code == 200
    assert client.get(f"/api/transactions/{txn_id}", headers=headers).status_code == 404

    blocked = client.delete(f"/api/categories/{food}", headers=headers)
    assert blocked.status_code == 400


def test_store_failure_surfaces_as_server_error() -> None:
    database = Database("sqlite://")  # no tables
    app = create_app(database)

    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get(
            "/api/stats/overview",
            headers={"Authorization": f"Bearer {issue_token(1)}"},
        )

    assert resp.status_code == 500
    assert resp.json()["success"] is False
