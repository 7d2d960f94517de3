import pytest

from spendwise.api import create_app


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "engine": True}


def test_protected_routes_require_login(client):
    response = client.get("/api/transactions")
    assert response.status_code == 401
    assert response.get_json()["success"] is False


# =============================================================================
# AUTH
# =============================================================================

def test_register_validates_password(client):
    response = client.post("/api/register", json={"username": "dave", "password": "short"})
    assert response.status_code == 400


def test_register_duplicate_username(client, auth_client):
    auth_client.post("/api/logout")
    response = client.post("/api/register", json={"username": "bob", "password": "password123"})
    assert response.status_code == 409


def test_login_logout_and_session(client, auth_client):
    assert auth_client.get("/api/check_session").get_json()["username"] == "bob"
    assert auth_client.post("/api/logout").status_code == 200
    assert client.get("/api/check_session").status_code == 401

    assert client.post("/api/login", json={"username": "bob", "password": "wrong-password"}).status_code == 401
    response = client.post("/api/login", json={"username": "bob", "password": "password123"})
    assert response.status_code == 200
    assert response.get_json()["user"]["username"] == "bob"
    assert "password_hash" not in response.get_json()["user"]


# =============================================================================
# TRANSACTIONS
# =============================================================================

def test_transaction_crud(auth_client):
    response = auth_client.post("/api/transactions", json={
        "type": "expense", "amount": "19.99", "category": "food", "description": "Pizza",
        "date": "2024-01-15", "tags": ["dinner"],
    })
    assert response.status_code == 201
    txn = response.get_json()["transaction"]
    assert txn["amount"] == 19.99
    assert txn["transaction_date"] == "2024-01-15T00:00:00"

    listing = auth_client.get("/api/transactions?type=expense").get_json()
    assert listing["total"] == 1

    response = auth_client.put(f"/api/transactions/{txn['transaction_id']}", json={"amount": 21})
    assert response.status_code == 200
    assert response.get_json()["transaction"]["amount"] == 21.0

    assert auth_client.get("/api/transactions/search?q=pizza").get_json()[0]["description"] == "Pizza"

    assert auth_client.delete(f"/api/transactions/{txn['transaction_id']}").status_code == 200
    assert auth_client.get(f"/api/transactions/{txn['transaction_id']}").status_code == 404


def test_transaction_errors(auth_client):
    assert auth_client.post("/api/transactions", json={"type": "expense"}).status_code == 400
    response = auth_client.post("/api/transactions", json={"type": "expense", "amount": 5, "category": "salary"})
    assert response.status_code == 400
    assert "Invalid category" in response.get_json()["message"]
    assert auth_client.put("/api/transactions/999", json={"amount": 5}).status_code == 404
    assert auth_client.get("/api/transactions?page=abc").status_code == 400
    assert auth_client.get("/api/transactions/search").status_code == 400


def test_unknown_savings_goal_in_body_is_a_bad_request(auth_client):
    response = auth_client.post("/api/transactions", json={
        "type": "expense", "amount": 5, "category": "food", "savings_goal_id": 4242,
    })

    assert response.status_code == 400
    assert response.get_json()["message"] == "Unknown savings goal: 4242"


def test_users_cannot_see_each_other(app, auth_client):
    txn_id = auth_client.post("/api/transactions", json={
        "type": "expense", "amount": 5, "category": "food",
    }).get_json()["transaction"]["transaction_id"]

    other = app.test_client()
    assert other.post("/api/register", json={"username": "eve", "password": "password123"}).status_code == 201
    assert other.get(f"/api/transactions/{txn_id}").status_code == 404
    assert other.get("/api/transactions").get_json()["total"] == 0


# =============================================================================
# RECURRING
# =============================================================================

def test_recurring_flow(auth_client):
    response = auth_client.post("/api/recurring", json={
        "type": "expense", "amount": 15.99, "category": "subscriptions", "description": "Netflix",
        "frequency": "monthly", "start_date": "2099-01-05",
    })
    assert response.status_code == 201
    template = response.get_json()["recurring"]
    assert template["state"] == "ACTIVE"
    assert template["next_occurrence"] == "2099-01-05T00:00:00"

    upcoming = auth_client.get(f"/api/recurring/{template['transaction_id']}/upcoming?count=3").get_json()
    assert [item["date"][:10] for item in upcoming] == ["2099-01-05", "2099-02-05", "2099-03-05"]
    assert auth_client.get(f"/api/recurring/{template['transaction_id']}/upcoming?count=0").status_code == 400

    assert len(auth_client.get("/api/recurring?status=active").get_json()) == 1
    assert auth_client.get("/api/recurring?status=bogus").status_code == 400

    response = auth_client.post(f"/api/recurring/{template['transaction_id']}/cancel")
    assert response.status_code == 200
    assert response.get_json()["recurring"]["state"] == "ENDED"

    response = auth_client.put(f"/api/recurring/{template['transaction_id']}", json={"amount": 20})
    assert response.status_code == 409

    assert auth_client.delete(f"/api/recurring/{template['transaction_id']}").status_code == 200
    assert auth_client.get(f"/api/recurring/{template['transaction_id']}").status_code == 404


def test_recurring_requires_frequency(auth_client):
    response = auth_client.post("/api/recurring", json={"type": "expense", "amount": 5, "category": "food"})
    assert response.status_code == 400


def test_template_cannot_be_deleted_as_transaction(auth_client):
    template = auth_client.post("/api/recurring", json={
        "type": "expense", "amount": 5, "category": "food", "frequency": "weekly", "start_date": "2099-01-01",
    }).get_json()["recurring"]
    assert auth_client.delete(f"/api/transactions/{template['transaction_id']}").status_code == 400


# =============================================================================
# BUDGETS
# =============================================================================

def test_budget_flow(auth_client):
    response = auth_client.post("/api/budgets", json={
        "type": "budget", "category": "food", "amount": 100, "period": "monthly",
    })
    assert response.status_code == 201
    budget = response.get_json()["budget"]
    assert budget["status"] == "active"

    duplicate = auth_client.post("/api/budgets", json={
        "type": "budget", "category": "food", "amount": 200, "period": "monthly",
    })
    assert duplicate.status_code == 409

    auth_client.post("/api/transactions", json={"type": "expense", "amount": 90, "category": "food"})
    fetched = auth_client.get(f"/api/budgets/{budget['budget_id']}").get_json()
    assert fetched["progress"] == 90.0
    assert fetched["status"] == "warning"
    assert len(fetched["recent_transactions"]) == 1

    overshoot = auth_client.post(f"/api/budgets/{budget['budget_id']}/progress", json={"amount": 50})
    assert overshoot.status_code == 400

    summary = auth_client.get("/api/budgets/summary").get_json()
    assert summary["budgets"]["total"] == 1

    assert auth_client.put(f"/api/budgets/{budget['budget_id']}", json={"alert_threshold": 95}).status_code == 200
    assert auth_client.delete(f"/api/budgets/{budget['budget_id']}").status_code == 200
    assert auth_client.get(f"/api/budgets/{budget['budget_id']}").status_code == 404


def test_savings_goal_progress(auth_client):
    goal = auth_client.post("/api/budgets", json={"type": "savings", "amount": 1000, "period": "yearly"}).get_json()["budget"]

    response = auth_client.post(f"/api/budgets/{goal['budget_id']}/progress", json={"amount": 250})

    assert response.status_code == 200
    assert response.get_json()["budget"]["percentage"] == 25


# =============================================================================
# ANALYTICS & JOBS
# =============================================================================

def test_analytics_endpoints(auth_client):
    auth_client.post("/api/transactions", json={"type": "income", "amount": 1000, "category": "salary"})
    auth_client.post("/api/transactions", json={"type": "expense", "amount": 250, "category": "food"})

    overview = auth_client.get("/api/analytics/overview").get_json()
    assert overview["balance"] == 750.0
    assert overview["savings_rate"] == 75.0

    assert auth_client.get("/api/analytics/categories").get_json()[0]["category"] == "food"
    assert auth_client.get("/api/analytics/categories?type=other").status_code == 400
    assert len(auth_client.get("/api/analytics/trends?period=monthly").get_json()) == 1
    assert auth_client.get("/api/analytics/trends?period=hourly").status_code == 400
    assert "budget_comparison" in auth_client.get("/api/analytics/monthly").get_json()
    assert auth_client.get("/api/analytics/upcoming?days=7").get_json() == []


def test_job_endpoint_runs_sweep(auth_client):
    auth_client.post("/api/recurring", json={
        "type": "expense", "amount": 5, "category": "food", "frequency": "daily", "start_date": "2020-01-01",
    })

    response = auth_client.post("/api/jobs/recurring")

    assert response.status_code == 200
    assert response.get_json()["summary"] == {"processed": 1, "errors": 0}
    assert auth_client.post("/api/jobs/unknown").status_code == 404


def test_job_endpoint_disabled(tmp_path, engine):
    app = create_app({"SECRET_KEY": "test", "ENABLE_JOB_ENDPOINTS": False, "ENABLE_SCHEDULER": False}, engine=engine)
    client = app.test_client()
    client.post("/api/register", json={"username": "frank", "password": "password123"})

    assert client.post("/api/jobs/recurring").status_code == 404


@pytest.mark.parametrize("message, status", [
    ("Transaction not found.", 404),
    ("Cannot update an expired budget.", 409),
    ("An error occurred: boom", 500),
    ("Amount must be greater than zero", 400),
    ("Unknown savings goal: 7", 400),
    ("Receipt not found.", 404),
    ("AI features are not configured (GOOGLE_API_KEY is not set)", 503),
])
def test_engine_messages_map_to_status(message, status):
    from spendwise.api import _status_for
    assert _status_for(message) == status
