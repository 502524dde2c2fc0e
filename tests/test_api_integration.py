"""
Integration tests for the Banking API
Tests end-to-end workflows using FastAPI TestClient
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import banking_api.api as api_module
from banking_api.api import create_app
from banking_api.config import BankingConfig
from banking_api.users import Role


@pytest.fixture
def system(banking_system):
    """Banking system with one admin and two funded customers"""
    users = banking_system.user_manager
    users.create_user("admin1", "admin123", Role.ADMIN)
    users.create_user("alice", "alice-pw", Role.CUSTOMER)
    users.create_user("bob", "bob-pw", Role.CUSTOMER)

    accounts = banking_system.account_manager
    accounts.create_account("alice", "Alice", "100000001", "A", "100.00")
    accounts.create_account("bob", "Bob", "100000002", "B", "0.00")
    return banking_system


@pytest.fixture
def client(system):
    return TestClient(create_app(system))


def login(client, username, password):
    r = client.post("/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}


def transfer(client, headers, source, destination, amount, description=""):
    return client.post("/transfer", headers=headers, json={
        "fromAccountNumber": source,
        "toAccountNumber": destination,
        "amount": amount,
        "description": description
    })


class TestHealthEndpoints:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"


class TestLogin:

    def test_login_returns_token(self, client, system):
        r = client.post("/login", json={"username": "alice", "password": "alice-pw"})
        assert r.status_code == 200

        data = r.json()
        assert data["tokenType"] == "bearer"
        assert "expiresAt" in data
        assert system.token_service.validate(data["token"]).username == "alice"

    @pytest.mark.parametrize("username,password", [("alice", "wrong"), ("nobody", "alice-pw")])
    def test_bad_credentials(self, client, username, password):
        r = client.post("/login", json={"username": username, "password": password})
        assert r.status_code == 401
        assert r.json()["error"] == "UNAUTHENTICATED"
        assert r.json()["message"] == "Invalid username or password"
        assert r.headers["WWW-Authenticate"] == "Bearer"

    def test_missing_fields(self, client):
        r = client.post("/login", json={"username": "alice"})
        assert r.status_code == 422


class TestTransferEndpoint:

    def test_transfer_and_statements(self, client):
        alice = login(client, "alice", "alice-pw")
        bob = login(client, "bob", "bob-pw")

        r = transfer(client, alice, "A", "B", "40.00", "rent")
        assert r.status_code == 200, r.text
        data = r.json()
        assert data["fromAccountNumber"] == "A"
        assert data["toAccountNumber"] == "B"
        assert Decimal(data["amount"]) == Decimal("40.00")
        assert data["description"] == "rent"
        assert data["transactionId"]

        assert Decimal(client.get("/accounts/me", headers=alice).json()["balance"]) == Decimal("60.00")
        assert Decimal(client.get("/accounts/me", headers=bob).json()["balance"]) == Decimal("40.00")

        [line] = client.get("/statement", headers=alice).json()
        assert line["direction"] == "OUTGOING"
        assert line["counterpartyAccountNumber"] == "B"
        assert Decimal(line["amount"]) == Decimal("40.00")
        assert line["description"] == "rent"

        [line] = client.get("/statement", headers=bob).json()
        assert line["direction"] == "INCOMING"
        assert line["counterpartyAccountNumber"] == "A"

    def test_json_number_amount(self, client):
        alice = login(client, "alice", "alice-pw")
        bob = login(client, "bob", "bob-pw")

        r = transfer(client, alice, "A", "B", 40.5)
        assert r.status_code == 200, r.text
        assert r.json()["amount"] == "40.5"

        assert Decimal(client.get("/accounts/me", headers=alice).json()["balance"]) == Decimal("59.50")
        assert Decimal(client.get("/accounts/me", headers=bob).json()["balance"]) == Decimal("40.50")

    def test_snake_case_fields_accepted(self, client):
        alice = login(client, "alice", "alice-pw")
        r = client.post("/transfer", headers=alice, json={
            "from_account_number": "A", "to_account_number": "B", "amount": 5
        })
        assert r.status_code == 200, r.text

    def test_missing_token(self, client):
        r = transfer(client, {}, "A", "B", "1.00")
        assert r.status_code == 401
        assert r.json()["error"] == "UNAUTHENTICATED"

    def test_garbage_token(self, client):
        r = transfer(client, {"Authorization": "Bearer not-a-token"}, "A", "B", "1.00")
        assert r.status_code == 401
        assert r.json()["error"] == "INVALID_SIGNATURE"

    def test_expired_token(self, client, system, clock):
        alice = login(client, "alice", "alice-pw")
        clock.advance(hours=24, seconds=1)

        r = transfer(client, alice, "A", "B", "1.00")
        assert r.status_code == 401
        assert r.json()["error"] == "TOKEN_EXPIRED"
        assert system.account_manager.get_account_by_number("A").balance == Decimal("100.00")

    def test_admin_cannot_transfer(self, client):
        admin = login(client, "admin1", "admin123")
        r = transfer(client, admin, "A", "B", "1.00")
        assert r.status_code == 403
        assert r.json()["error"] == "FORBIDDEN"

    def test_insufficient_funds(self, client, system):
        alice = login(client, "alice", "alice-pw")
        r = transfer(client, alice, "A", "B", "100.01")
        assert r.status_code == 422
        assert r.json()["error"] == "INSUFFICIENT_FUNDS"
        assert system.ledger.count_entries() == 0

    def test_unknown_destination(self, client):
        alice = login(client, "alice", "alice-pw")
        r = transfer(client, alice, "A", "Z", "1.00")
        assert r.status_code == 404
        assert r.json()["error"] == "ACCOUNT_NOT_FOUND"
        assert r.json()["side"] == "destination"

    @pytest.mark.parametrize("amount", ["-1.00", "0", "abc", "1.001", 40.555, -5, None])
    def test_invalid_amount(self, client, amount):
        alice = login(client, "alice", "alice-pw")
        r = transfer(client, alice, "A", "B", amount)
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_AMOUNT"


class TestStatementEndpoint:

    def test_empty_statement(self, client):
        bob = login(client, "bob", "bob-pw")
        r = client.get("/statement", headers=bob)
        assert r.status_code == 200
        assert r.json() == []

    def test_customer_without_account(self, client, system):
        system.user_manager.create_user("carol", "carol-pw", Role.CUSTOMER)
        carol = login(client, "carol", "carol-pw")
        r = client.get("/statement", headers=carol)
        assert r.status_code == 404
        assert r.json()["error"] == "ACCOUNT_NOT_FOUND"

    def test_admin_has_no_statement(self, client):
        admin = login(client, "admin1", "admin123")
        assert client.get("/statement", headers=admin).status_code == 403


class TestAdministration:

    def test_create_user_and_account(self, client):
        admin = login(client, "admin1", "admin123")

        r = client.post("/users", headers=admin, json={
            "username": "carol", "password": "carol-pw", "role": "CUSTOMER"
        })
        assert r.status_code == 201, r.text
        assert r.json() == {"username": "carol", "role": "CUSTOMER"}

        r = client.post("/accounts", headers=admin, json={
            "username": "carol", "holderName": "Carol", "taxId": "100000003",
            "accountNumber": "C", "balance": "25.00"
        })
        assert r.status_code == 201, r.text
        assert r.json()["accountNumber"] == "C"
        assert Decimal(r.json()["balance"]) == Decimal("25.00")

        carol = login(client, "carol", "carol-pw")
        r = transfer(client, carol, "C", "A", "25.00")
        assert r.status_code == 200

    def test_list_accounts(self, client):
        admin = login(client, "admin1", "admin123")
        r = client.get("/accounts", headers=admin)
        assert r.status_code == 200
        assert [a["accountNumber"] for a in r.json()] == ["A", "B"]
        assert r.json()[0]["username"] == "alice"

    def test_customer_cannot_administer(self, client):
        alice = login(client, "alice", "alice-pw")
        assert client.get("/accounts", headers=alice).status_code == 403
        r = client.post("/users", headers=alice, json={
            "username": "mallory", "password": "x", "role": "ADMIN"
        })
        assert r.status_code == 403

    def test_account_for_unknown_user(self, client):
        admin = login(client, "admin1", "admin123")
        r = client.post("/accounts", headers=admin, json={
            "username": "nobody", "holderName": "N", "taxId": "1", "accountNumber": "N"
        })
        assert r.status_code == 404
        assert r.json()["error"] == "USER_NOT_FOUND"

    def test_duplicate_account_number(self, client, system):
        system.user_manager.create_user("carol", "carol-pw", Role.CUSTOMER)
        admin = login(client, "admin1", "admin123")
        r = client.post("/accounts", headers=admin, json={
            "username": "carol", "holderName": "Carol", "taxId": "1", "accountNumber": "A"
        })
        assert r.status_code == 409
        assert r.json()["error"] == "DUPLICATE_ACCOUNT"

    def test_duplicate_user(self, client):
        admin = login(client, "admin1", "admin123")
        r = client.post("/users", headers=admin, json={
            "username": "alice", "password": "x", "role": "CUSTOMER"
        })
        assert r.status_code == 409
        assert r.json()["error"] == "DUPLICATE_USER"

    def test_unknown_role(self, client):
        admin = login(client, "admin1", "admin123")
        r = client.post("/users", headers=admin, json={
            "username": "eve", "password": "x", "role": "ROOT"
        })
        assert r.status_code == 422


def test_default_app_seeds_demo_data(monkeypatch):
    config = BankingConfig(database_url="memory://", seed_demo_data=True,
                           jwt_secret="test-signing-secret-with-more-than-32-bytes",
                           log_format="text")
    monkeypatch.setattr(api_module, "get_config", lambda: config)

    client = TestClient(create_app())
    headers = login(client, "cliente1", "senha123")

    r = transfer(client, headers, "1000000001", "1000000002", "250.00", "demo")
    assert r.status_code == 200, r.text

    r = client.get("/accounts/me", headers=headers)
    assert Decimal(r.json()["balance"]) == Decimal("750.00")

    system = client.app.state.banking_system
    assert system.audit_trail.verify_integrity()["valid"]
