"""Integration tests for the GoCardless linking endpoints."""

from decimal import Decimal

from integrations.provider_protocol import AccountBalance, AccountDetails, Institution, Requisition
from models import Account
from tests.fixtures import create_user


def test_list_institutions(client, auth_headers, mock_gocardless_client):
    mock_gocardless_client._institutions = [
        Institution(id="BANK_DE", name="Bank DE", countries=["DE"]),
        Institution(id="BANK_GB", name="Bank GB", countries=["GB"], bic="BANKGB22"),
    ]

    response = client.get("/api/gocardless/institutions?country=gb", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == [
        {
            "id": "BANK_GB",
            "name": "Bank GB",
            "bic": "BANKGB22",
            "transaction_total_days": None,
            "countries": ["GB"],
            "logo": None,
        }
    ]


def test_institutions_country_validated(client, auth_headers):
    response = client.get("/api/gocardless/institutions?country=GBR", headers=auth_headers)
    assert response.status_code == 422


def test_institutions_not_configured(client, auth_headers, mock_gocardless_client):
    mock_gocardless_client._configured = False

    response = client.get("/api/gocardless/institutions?country=GB", headers=auth_headers)

    assert response.status_code == 503


def test_create_link(client, auth_headers, user, mock_gocardless_client):
    response = client.post(
        "/api/gocardless/link",
        json={
            "institution_id": "BANK_GB",
            "redirect_url": "https://app.example.com/callback",
            "max_historical_days": 180,
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["reference"].startswith(f"{user.id}-")
    assert body["link"].startswith("https://")
    assert body["agreement_id"] == "eua-1"

    agreement = mock_gocardless_client.created_agreements[0]
    assert agreement.max_historical_days == 180
    requisition = mock_gocardless_client.requisitions[body["requisition_id"]]
    assert requisition.agreement == "eua-1"
    assert requisition.reference == body["reference"]


def test_create_link_requires_redirect(client, auth_headers):
    response = client.post(
        "/api/gocardless/link", json={"institution_id": "BANK_GB"}, headers=auth_headers
    )
    assert response.status_code == 422


def test_create_link_upstream_failure(client, auth_headers, mock_gocardless_client):
    mock_gocardless_client._should_fail = True

    response = client.post(
        "/api/gocardless/link",
        json={"institution_id": "BANK_GB", "redirect_url": "https://app.example.com/cb"},
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "GoCardless request failed (HTTP 500)"


def test_get_own_requisition(client, auth_headers, user, mock_gocardless_client):
    mock_gocardless_client.requisitions["req-1"] = Requisition(
        id="req-1", institution_id="BANK_GB", status="LN",
        reference=f"{user.id}-abc", accounts=["acc-1"],
    )

    response = client.get("/api/gocardless/requisitions/req-1", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["accounts"] == ["acc-1"]
    assert response.json()["status"] == "LN"


def test_foreign_requisition_hidden(client, auth_headers, db, mock_gocardless_client):
    other = create_user(db, "other@example.com")
    db.commit()
    mock_gocardless_client.requisitions["req-1"] = Requisition(
        id="req-1", institution_id="BANK_GB", status="LN", reference=f"{other.id}-abc",
    )

    response = client.get("/api/gocardless/requisitions/req-1", headers=auth_headers)

    assert response.status_code == 404


def test_requisition_without_reference_hidden(client, auth_headers, mock_gocardless_client):
    mock_gocardless_client.requisitions["req-1"] = Requisition(
        id="req-1", institution_id="BANK_GB", status="LN", accounts=["acc-1"],
    )

    response = client.get("/api/gocardless/requisitions/req-1", headers=auth_headers)

    assert response.status_code == 404


def test_connected_accounts(client, auth_headers, bank_account, mock_gocardless_client):
    mock_gocardless_client._details = {
        "gc-acc-1": AccountDetails(account_id="gc-acc-1", iban="GB33BUKB20201555555555", currency="GBP"),
    }
    mock_gocardless_client._balances = {
        "gc-acc-1": [AccountBalance(amount=Decimal("512.30"), currency="GBP", balance_type="expected")],
    }

    response = client.get("/api/gocardless/connected-accounts", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total_accounts"] == 1
    account = body["connected_accounts"][0]
    assert account["local_id"] == bank_account.id
    assert account["account_type"] == "bank_account"
    assert account["details"]["iban"] == "GB33BUKB20201555555555"
    assert Decimal(account["balances"][0]["amount"]) == Decimal("512.30")


def test_connected_accounts_not_configured(client, auth_headers, bank_account, mock_gocardless_client):
    mock_gocardless_client._configured = False

    response = client.get("/api/gocardless/connected-accounts", headers=auth_headers)

    assert response.status_code == 503


def test_sync_balances(client, auth_headers, bank_account, mock_gocardless_client, db):
    mock_gocardless_client._balances = {
        "gc-acc-1": [AccountBalance(amount=Decimal("640.00"), currency="EUR", balance_type="interimAvailable")],
    }

    response = client.post("/api/gocardless/sync-balances", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"total_accounts": 1, "successful_syncs": 1, "failed_syncs": 0}
    assert body["sync_results"][0]["status"] == "success"
    assert Decimal(body["sync_results"][0]["new_balance"]) == Decimal("640.00")
    db.expire_all()
    assert db.query(Account).one().balance == Decimal("640.00")


def test_sync_balances_reports_failures(client, auth_headers, bank_account, mock_gocardless_client):
    mock_gocardless_client._failing_accounts = {"gc-acc-1"}

    response = client.post("/api/gocardless/sync-balances", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["failed_syncs"] == 1
    assert body["sync_results"][0]["status"] == "failed"
    assert "HTTP 500" in body["sync_results"][0]["error"]
