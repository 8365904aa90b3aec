"""
Tests for Stripe Connect onboarding links and account verification.

Run with: pytest tests/test_connect.py -v
"""

import pytest

from buuk.domain.payments.errors import ProviderAPIError
from conftest import add_setting


class FakeConnectStripeClient:
    """Records Connect requests instead of calling Stripe"""

    def __init__(self, account=None, fail=False):
        self.account = account or {"id": "acct_new"}
        self.fail = fail
        self.created = []
        self.links = []
        self.retrieved = []

    async def create_account(self, secret_key, params):
        self.created.append((secret_key, params))
        return {"id": "acct_new"}

    async def create_account_link(self, secret_key, params):
        self.links.append(params)
        return {"url": f"https://connect.stripe.test/{params['account']}"}

    async def retrieve_account(self, secret_key, account_id):
        self.retrieved.append(account_id)
        if self.fail:
            raise ProviderAPIError("stripe", "No such account", 404)
        return {**self.account, "id": account_id}


@pytest.fixture
def stripe(db, business, override_provider_clients):
    add_setting(db, business.id, "stripe_secret_key", "sk_test_platform")
    fake = FakeConnectStripeClient(
        account={
            "charges_enabled": True,
            "payouts_enabled": False,
            "details_submitted": True,
            "country": "DE",
            "email": "owner@example.com",
        }
    )
    override_provider_clients(stripe=fake)
    return fake


# ============================================================================
# ACCOUNT LINKS
# ============================================================================


def test_account_link_creates_and_stores_account(client, db, business, stripe):
    response = client.post(
        "/payments/connect/account-link", json={"business_id": business.id, "country": "de"}
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://connect.stripe.test/acct_new", "account_id": "acct_new"}
    secret_key, params = stripe.created[0]
    assert secret_key == "sk_test_platform"
    assert params["type"] == "standard"
    assert params["country"] == "DE"
    assert params["capabilities"]["transfers"] == {"requested": True}
    assert stripe.links[0]["type"] == "account_onboarding"
    assert "connect_return=true" in stripe.links[0]["return_url"]

    db.refresh(business)
    assert business.stripe_connect_account_id == "acct_new"
    assert business.stripe_account_type == "standard"
    assert business.stripe_connect_country == "DE"
    assert business.stripe_connect_created_at is not None


def test_account_link_reuses_existing_account(client, db, business, stripe):
    business.stripe_connect_account_id = "acct_existing"
    db.commit()

    response = client.post(
        "/payments/connect/account-link",
        json={"business_id": business.id, "country": "DE", "account_type": "express"},
    )

    assert response.json()["account_id"] == "acct_existing"
    assert stripe.created == []
    assert stripe.links[0]["account"] == "acct_existing"


def test_account_link_rejects_unknown_account_type(client, business, stripe):
    response = client.post(
        "/payments/connect/account-link",
        json={"business_id": business.id, "country": "DE", "account_type": "custom"},
    )

    assert response.status_code == 422
    assert stripe.created == []


def test_account_link_for_unknown_business_is_404(client, stripe):
    response = client.post("/payments/connect/account-link", json={"business_id": "missing", "country": "DE"})

    assert response.status_code == 404


# ============================================================================
# VERIFICATION
# ============================================================================


def test_verify_refreshes_connect_flags(client, db, business, stripe):
    business.stripe_connect_account_id = "acct_123"
    db.commit()

    response = client.post("/payments/connect/verify", json={"business_id": business.id})

    assert response.status_code == 200
    assert response.json() == {
        "account_id": "acct_123",
        "charges_enabled": True,
        "payouts_enabled": False,
        "details_submitted": True,
        "onboarding_complete": True,
        "country": "DE",
        "email": "owner@example.com",
    }
    assert stripe.retrieved == ["acct_123"]
    db.refresh(business)
    assert business.stripe_connect_charges_enabled is True
    assert business.stripe_connect_onboarding_complete is True


def test_verify_without_account_is_400(client, business, stripe):
    response = client.post("/payments/connect/verify", json={"business_id": business.id})

    assert response.status_code == 400
    assert response.json()["detail"] == "No Stripe Connect account found for this business"
    assert stripe.retrieved == []


def test_verify_provider_error_is_502_and_keeps_flags(client, db, business, stripe):
    business.stripe_connect_account_id = "acct_123"
    business.stripe_connect_charges_enabled = True
    db.commit()
    stripe.fail = True

    response = client.post("/payments/connect/verify", json={"business_id": business.id})

    assert response.status_code == 502
    db.refresh(business)
    assert business.stripe_connect_charges_enabled is True
