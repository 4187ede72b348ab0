"""
HTTP API tests.

Verifies:
- Operator gate: 401 without a session, login/logout with the shared key
- Users, allocations, workflows, questions and orders over JSON
- Error mapping: 400 validation, 404 missing, 409 conflict and lifecycle
"""

import pytest

from opsdesk.services import session_service
from opsdesk.services.record_store import StoreError

from conftest import ADMIN_KEY, T0, auth_headers


def create_user(client, auth, username, user_type, password="secret1"):
    resp = client.post(
        "/api/users",
        json={"username": username, "password": password, "userType": user_type},
        headers=auth,
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


class TestSystem:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["checks"]["record_store"]["status"] == "healthy"
        assert body["checks"]["live"]["status"] == "healthy"

    def test_version(self, client):
        assert client.get("/version").get_json()["api_version"] == "1.0.0"


class TestOperatorGate:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/customers"),
            ("GET", "/api/staff"),
            ("POST", "/api/workflows"),
            ("POST", "/api/questions"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders/sweep"),
            ("GET", "/api/exports/orders"),
            ("GET", "/api/live/orders"),
            ("GET", "/api/auth/session"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_invalid_token(self, client):
        resp = client.get("/api/users", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_login_with_wrong_key(self, client, records):
        session_service.set_admin_key(records, ADMIN_KEY, hashed=False)
        assert client.post("/api/auth/login", json={"key": "wrong"}).status_code == 401
        assert client.post("/api/auth/login", json={}).status_code == 400

    def test_login_without_configured_key(self, client):
        assert client.post("/api/auth/login", json={"key": "anything"}).status_code == 401

    def test_hashed_key(self, client, records):
        session_service.set_admin_key(records, "hashed-key-1", hashed=True)
        assert records.get("adminKey").startswith("$2")

        resp = client.post("/api/auth/login", json={"key": "hashed-key-1"})
        assert resp.status_code == 200
        assert resp.get_json()["expires_at"].endswith("Z")

    def test_session_details(self, client, auth):
        body = client.get("/api/auth/session", headers=auth).get_json()

        assert body["authorized"] is True
        assert body["session"]["is_revoked"] is False
        assert body["session"]["expires_at"].endswith("Z")
        assert body["session"]["created_at"] < body["session"]["expires_at"]

    def test_logout_revokes(self, client, auth):
        assert client.get("/api/auth/session", headers=auth).status_code == 200
        assert client.post("/api/auth/logout", headers=auth).status_code == 200
        assert client.get("/api/auth/session", headers=auth).status_code == 401

    def test_query_token_only_for_get(self, client, admin_token):
        assert client.get(f"/api/users?access_token={admin_token}").status_code == 200
        resp = client.post(
            f"/api/users?access_token={admin_token}",
            json={"username": "x", "password": "secret1", "userType": "staff"},
        )
        assert resp.status_code == 401


class TestUsersApi:
    def test_create_and_list(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")
        create_user(client, auth, "bob", "staff")

        assert alice["allocatedStaffs"] == []
        assert [u["username"] for u in client.get("/api/customers", headers=auth).get_json()] == ["alice"]
        assert [u["username"] for u in client.get("/api/staff", headers=auth).get_json()] == ["bob"]
        assert len(client.get("/api/users", headers=auth).get_json()) == 2
        assert client.get("/api/users?type=admin", headers=auth).status_code == 400

    def test_duplicate_username_conflict(self, client, auth):
        create_user(client, auth, "alice", "customer")
        resp = client.post(
            "/api/users",
            json={"username": "alice", "password": "secret1", "userType": "staff"},
            headers=auth,
        )
        assert resp.status_code == 409
        assert resp.get_json() == {"error": "Username already exists"}

    def test_short_password(self, client, auth):
        resp = client.post(
            "/api/users",
            json={"username": "alice", "password": "123", "userType": "customer"},
            headers=auth,
        )
        assert resp.status_code == 400

    def test_update_and_delete(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")

        resp = client.put(f"/api/users/{alice['id']}", json={"allocatedMachine": "M-1"}, headers=auth)
        assert resp.status_code == 200
        assert resp.get_json()["allocatedMachine"] == "M-1"

        assert client.delete(f"/api/users/{alice['id']}", headers=auth).status_code == 200
        assert client.get(f"/api/users/{alice['id']}", headers=auth).status_code == 404
        assert client.delete(f"/api/users/{alice['id']}", headers=auth).status_code == 404
        assert client.put("/api/users/missing", json={"username": "x"}, headers=auth).status_code == 404

    def test_allocation_flow(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")
        bob = create_user(client, auth, "bob", "staff")

        for _ in range(2):
            resp = client.post(f"/api/customers/{alice['id']}/staff", json={"staffId": bob["id"]}, headers=auth)
            assert resp.status_code == 200
            assert resp.get_json()["allocatedStaffs"] == [bob["id"]]

        details = client.get(f"/api/customers/{alice['id']}/staff", headers=auth).get_json()
        assert details["allocated"] == [{"id": bob["id"], "username": "bob"}]

        customers = client.get(f"/api/staff/{bob['id']}/customers", headers=auth).get_json()
        assert customers == [{"id": alice["id"], "username": "alice"}]

        resp = client.delete(f"/api/customers/{alice['id']}/staff/{bob['id']}", headers=auth)
        assert resp.get_json()["allocatedStaffs"] == []

    def test_allocation_errors(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")
        resp = client.post(f"/api/customers/{alice['id']}/staff", json={"staffId": "nobody"}, headers=auth)
        assert resp.status_code == 400
        resp = client.post("/api/customers/missing/staff", json={"staffId": "nobody"}, headers=auth)
        assert resp.status_code == 404
        assert client.get("/api/customers/missing/staff", headers=auth).status_code == 404
        assert client.get(f"/api/staff/{alice['id']}/customers", headers=auth).status_code == 404


class TestWorkflowsAndQuestionsApi:
    def test_workflow_crud(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")
        resp = client.post(
            "/api/workflows",
            json={"customerId": alice["id"], "screenTitle": "Color", "options": ["Red", "Blue"]},
            headers=auth,
        )
        assert resp.status_code == 201
        workflow = resp.get_json()

        listed = client.get(f"/api/customers/{alice['id']}/workflows", headers=auth).get_json()
        assert [w["id"] for w in listed] == [workflow["id"]]

        resp = client.put(f"/api/workflows/{workflow['id']}", json={"options": ["Green"]}, headers=auth)
        assert resp.get_json()["options"] == ["Green"]

        assert client.delete(f"/api/workflows/{workflow['id']}", headers=auth).status_code == 200
        assert client.get(f"/api/workflows/{workflow['id']}", headers=auth).status_code == 404

    def test_workflow_validation(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")
        resp = client.post(
            "/api/workflows",
            json={"customerId": alice["id"], "screenTitle": "Color", "options": [""]},
            headers=auth,
        )
        assert resp.status_code == 400

    def test_question_crud(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")
        resp = client.post(
            "/api/questions",
            json={"customerId": alice["id"], "question": "Ready?", "options": ["Yes", "No"], "correctAnswer": "Yes"},
            headers=auth,
        )
        assert resp.status_code == 201
        question = resp.get_json()

        listed = client.get(f"/api/customers/{alice['id']}/questions", headers=auth).get_json()
        assert [q["question"] for q in listed] == ["Ready?"]

        resp = client.put(f"/api/questions/{question['id']}", json={"correctAnswer": "Maybe"}, headers=auth)
        assert resp.status_code == 400

        assert client.delete(f"/api/questions/{question['id']}", headers=auth).status_code == 200
        assert client.delete(f"/api/questions/{question['id']}", headers=auth).status_code == 404


class TestOrdersApi:
    def make_order(self, client, auth):
        alice = create_user(client, auth, "alice", "customer")
        resp = client.post(
            "/api/orders",
            json={"customerId": alice["id"], "selectedOptions": {"Color": "Red"}},
            headers=auth,
        )
        assert resp.status_code == 201
        return resp.get_json()

    def test_create_and_filter(self, client, auth):
        order = self.make_order(client, auth)
        assert order["status"] == "Pending"

        pending = client.get("/api/orders?status=Pending", headers=auth).get_json()
        assert [o["id"] for o in pending] == [order["id"]]
        assert client.get("/api/orders?status=Accepted", headers=auth).get_json() == []
        by_customer = client.get(f"/api/orders?customerId={order['customerId']}", headers=auth).get_json()
        assert len(by_customer) == 1

    def test_status_changes(self, client, auth):
        order = self.make_order(client, auth)
        url = f"/api/orders/{order['id']}/status"

        resp = client.post(url, json={"status": "Accepted"}, headers=auth)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "Accepted"

        assert client.post(url, json={"status": "Rejected"}, headers=auth).status_code == 409
        assert client.post(url, json={"status": "Pending", "override": True}, headers=auth).status_code == 409
        assert client.post(url, json={"status": "Completed"}, headers=auth).status_code == 400

        resp = client.post(url, json={"status": "Rejected", "override": True}, headers=auth)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "Rejected"

        resp = client.post("/api/orders/missing/status", json={"status": "Accepted"}, headers=auth)
        assert resp.status_code == 404

    def test_manual_sweep(self, client, auth, records):
        order = self.make_order(client, auth)
        records.set(f"Orders/{order['id']}/createdAt", T0)

        resp = client.post("/api/orders/sweep", headers=auth)

        assert resp.status_code == 200
        assert resp.get_json()["rejected"] == [order["id"]]
        assert client.get(f"/api/orders/{order['id']}", headers=auth).get_json()["rejectedReason"] == "timeout"

    def test_bulk_delete(self, client, auth):
        first = self.make_order(client, auth)
        second = client.post("/api/orders", json={"customerId": first["customerId"]}, headers=auth).get_json()

        resp = client.delete("/api/orders", json={"ids": [first["id"], "missing"]}, headers=auth)
        assert resp.get_json() == {"deleted": [first["id"]], "deleted_count": 1}

        assert client.delete("/api/orders", json={"ids": []}, headers=auth).status_code == 400

        resp = client.delete("/api/orders?all=1", headers=auth)
        assert resp.get_json() == {"deleted_count": 1}
        assert client.get(f"/api/orders/{second['id']}", headers=auth).status_code == 404

    def test_export(self, client, auth):
        order = self.make_order(client, auth)

        body = client.get("/api/exports/orders", headers=auth).get_json()

        assert body["generated_at"].endswith("Z")
        assert [row["orderId"] for row in body["rows"]] == [order["id"]]
        assert body["rows"][0]["customerName"] == "alice"
        assert body["rows"][0]["selectedOptions"] == ["Color: Red"]


class TestStoreUnavailable:
    @pytest.fixture
    def broken_store(self, records, monkeypatch):
        def unavailable(path):
            raise StoreError("database is locked")

        monkeypatch.setattr(records, "_read_path", unavailable)

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/customers"),
            ("GET", "/api/staff"),
            ("GET", "/api/users/u1"),
            ("GET", "/api/customers/c1/staff"),
            ("GET", "/api/staff/s1/customers"),
            ("GET", "/api/customers/c1/workflows"),
            ("GET", "/api/workflows/w1"),
            ("DELETE", "/api/workflows/w1"),
            ("GET", "/api/customers/c1/questions"),
            ("GET", "/api/questions/q1"),
            ("DELETE", "/api/questions/q1"),
            ("GET", "/api/orders/o1"),
            ("DELETE", "/api/orders/o1"),
            ("GET", "/api/orders"),
            ("GET", "/api/exports/orders"),
            ("GET", "/api/live/orders"),
        ],
    )
    def test_read_failures_map_to_503(self, client, auth, broken_store, method, path):
        resp = getattr(client, method.lower())(path, headers=auth)

        assert resp.status_code == 503, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json() == {"error": "Record store unavailable"}
