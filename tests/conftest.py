import os

# Settings are read at import time; pin a test environment before any
# invoicehub module is imported.
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["DEFAULT_PLAN"] = "free"
os.environ["UPSTASH_REDIS_REST_URL"] = ""
os.environ["UPSTASH_REDIS_REST_TOKEN"] = ""

import pytest

from invoicehub.services.auth_service import create_access_token

ORG_A = "org_alpha"
ORG_B = "org_beta"
USER_A = "user_a"


@pytest.fixture
def org_token():
    return create_access_token(USER_A, ORG_A, email="owner@alpha.test", org_role="admin")


@pytest.fixture
def auth_headers(org_token):
    return {"Authorization": f"Bearer {org_token}"}


@pytest.fixture
def valid_payload():
    return {
        "customer_name": "Acme Corporation",
        "customer_email": "accounting@acme.com",
        "amount": 49.99,
        "status": "pending",
        "issue_date": "2025-01-15",
        "due_date": "2025-02-15",
        "items": [{"name": "Consulting", "quantity": 2, "price": 25.00}],
        "payment_method": "bank_transfer",
        "notes": "Net 30",
    }
