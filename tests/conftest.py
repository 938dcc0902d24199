"""
Pytest configuration and shared fixtures.

SAFETY: tests never touch a real MongoDB. The cached client in
utils.db_utils is replaced by an in-memory mongomock client and the
database name is pinned to a test name.
"""
import json
import os
import sys

import azure.functions as func
import mongomock
import pytest
from bson import ObjectId

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(ROOT_DIR)

TEST_DB_NAME = "EOffice_KPI_test"
PROD_DB_NAME = "EOffice_KPI"
ADMIN_EMAIL = "admin@eoffice.test"

os.environ["KPI_DB_NAME"] = TEST_DB_NAME
os.environ["APP_ENV"] = "test"
os.environ.setdefault("SUPPRESS_ENV_WARNING", "1")

from kpi_weights.application import create_default_kpis  # noqa: E402
from kpi_weights.store import COLL_PROJECTS, COLL_USERS  # noqa: E402
from utils import db_utils, settings  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def enforce_test_db():
    """Ensure tests never run against the production database."""
    db_name = settings.db_name()
    if db_name == PROD_DB_NAME:
        pytest.fail(f"SAFETY GUARD: Tests cannot run against production DB. Set KPI_DB_NAME={TEST_DB_NAME}.")
    return db_name


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """No real Gemini calls, no Key Vault, a known admin list."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("KEY_VAULT_URL", raising=False)
    monkeypatch.delenv("AZURE_FUNCTIONS_ENVIRONMENT", raising=False)
    monkeypatch.setenv("KPI_DB_NAME", TEST_DB_NAME)
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("KPI_ADMIN_EMAILS", ADMIN_EMAIL)


@pytest.fixture
def mongo_client():
    """In-memory MongoDB wired into the cached client used by get_db()."""
    client = mongomock.MongoClient()
    db_utils._CLIENT_CACHE = client
    yield client
    db_utils._CLIENT_CACHE = None
    client.close()


@pytest.fixture
def db(mongo_client):
    return mongo_client[TEST_DB_NAME]


@pytest.fixture
def make_employee(db):
    def _make(name="Ravi Kumar", employer_type="Field", email=None, role="employee", defaults=True):
        email = email or f"{name.lower().replace(' ', '.')}@eoffice.test"
        user_id = db[COLL_USERS].insert_one(
            {
                "name": name,
                "email": email,
                "role": role,
                "employerType": employer_type,
                "department": "Works",
                "archived": False,
                "hasAIKPI": False,
                "kpiVersion": 0,
            }
        ).inserted_id
        if defaults:
            create_default_kpis(db, user_id, employer_type)
        return user_id

    return _make


@pytest.fixture
def make_project(db):
    def _make(name="Ring Road Phase 2", kpi_weights=None, **extra):
        doc = {"name": name, "status": "active", "kpiWeights": kpi_weights, **extra}
        if kpi_weights is None:
            doc.pop("kpiWeights")
        return db[COLL_PROJECTS].insert_one(doc).inserted_id

    return _make


@pytest.fixture
def make_request():
    """Builds real azure.functions.HttpRequest objects."""
    def _make(method="GET", url="/api/", body=None, params=None, route_params=None, email=None, headers=None):
        hdrs = dict(headers or {})
        if email:
            hdrs["X-User-Email"] = email
        if body is not None and not isinstance(body, (bytes, str)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode()
        return func.HttpRequest(
            method=method,
            url=url,
            headers=hdrs,
            params=params or {},
            route_params=route_params or {},
            body=body or b"",
        )

    return _make


def response_json(resp):
    return json.loads(resp.get_body() or b"null")


@pytest.fixture
def read_json():
    return response_json


@pytest.fixture
def new_id():
    return lambda: str(ObjectId())
