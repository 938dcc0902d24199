import time

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from utils import db_utils, settings
from utils.auth_utils import get_email_from_jwt_cookie, verify_jwt_token
from utils.rbac import get_user_email, is_admin


@pytest.fixture
def rsa_keys(monkeypatch):
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    monkeypatch.setenv("JWT_PUBLIC_KEY", public_pem.replace("\n", "\\n"))
    return private_key


def _token(private_key, **claims):
    payload = {"email": "ravi.kumar@eoffice.test", "exp": int(time.time()) + 600, **claims}
    return jwt.encode(payload, private_key, algorithm="RS256")


def test_safety_guard_refuses_production_db(mongo_client, monkeypatch):
    monkeypatch.setenv("KPI_DB_NAME", settings.PROD_DB_NAME)
    with pytest.raises(RuntimeError, match="Safety guard"):
        db_utils.get_db()


def test_production_may_use_production_db(mongo_client, monkeypatch):
    monkeypatch.setenv("KPI_DB_NAME", settings.PROD_DB_NAME)
    monkeypatch.setenv("APP_ENV", "prod")
    assert db_utils.get_db().name == settings.PROD_DB_NAME


def test_missing_connection_string(monkeypatch):
    db_utils._CLIENT_CACHE = None
    for key in db_utils.CONNECTION_STRING_KEYS:
        monkeypatch.delenv(key, raising=False)
    with pytest.raises(RuntimeError, match="Connection String not found"):
        db_utils.get_db_client()


def test_secret_from_environment_first(monkeypatch):
    monkeypatch.setenv("GEMINI_MODEL", "gemini-test")
    assert settings.get_secret("GEMINI_MODEL") == "gemini-test"
    assert settings.get_secret("KPI_NOT_SET_ANYWHERE", "fallback") == "fallback"


def test_jwt_cookie_identity(rsa_keys, make_request):
    req = make_request("GET", headers={"Cookie": f"token={_token(rsa_keys)}"})
    assert get_email_from_jwt_cookie(req) == "ravi.kumar@eoffice.test"

    req = make_request("GET", headers={"Authorization": f"Bearer {_token(rsa_keys, email='meera@eoffice.test')}"})
    assert get_email_from_jwt_cookie(req) == "meera@eoffice.test"


def test_expired_or_foreign_tokens_are_rejected(rsa_keys):
    assert verify_jwt_token(_token(rsa_keys, exp=int(time.time()) - 10)) is None

    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    assert verify_jwt_token(_token(other_key)) is None


def test_header_identity_only_outside_production(make_request, monkeypatch):
    req = make_request("GET", email="spoof@eoffice.test")
    assert get_user_email(req) == "spoof@eoffice.test"

    monkeypatch.setenv("APP_ENV", "prod")
    assert get_user_email(req) is None

    principal = make_request("GET", headers={"x-ms-client-principal-name": "real@eoffice.test"})
    assert get_user_email(principal) == "real@eoffice.test"


def test_admin_from_env_list(db):
    assert is_admin("ADMIN@eoffice.test") is True
    assert is_admin("nobody@eoffice.test") is False
    assert is_admin("") is False
