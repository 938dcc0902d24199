import logging
import os

from pymongo.errors import PyMongoError

from kpi_weights.errors import Forbidden
from kpi_weights.store import COLL_USERS
from utils import settings
from utils.auth_utils import get_email_from_jwt_cookie
from utils.db_utils import get_db

ADMIN_EMAILS_ENV = "KPI_ADMIN_EMAILS"


def get_allowed_emails(env_var_name: str) -> set[str]:
    raw = os.getenv(env_var_name, "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def get_user_doc(email: str) -> dict | None:
    if not email:
        return None
    try:
        return get_db()[COLL_USERS].find_one({"email": email.lower()})
    except (PyMongoError, RuntimeError) as e:
        logging.error(f"RBAC DB lookup failed: {e}")
        return None


def _check_db_role(email: str, role: str) -> bool:
    user = get_user_doc(email)
    if not user:
        return False
    return user.get("role") == role


def is_admin(email: str) -> bool:
    if not email:
        return False
    email = email.lower()

    # Check Env
    if email in get_allowed_emails(ADMIN_EMAILS_ENV):
        return True

    # Check DB
    return _check_db_role(email, "admin")


def get_user_email(req) -> str | None:
    # 1. Azure App Service Auth, always honored
    val = req.headers.get("x-ms-client-principal-name")
    if val:
        return val

    # 2. JWT from cookie or bearer header
    val = get_email_from_jwt_cookie(req)
    if val:
        return val

    # 3. Dev/Test only: X-User-Email. Ignored in production to prevent spoofing
    if not settings.is_production():
        val = req.headers.get("X-User-Email")
        if val:
            return val

    return None


def require_user(req) -> str:
    email = get_user_email(req)
    if not email:
        raise Forbidden("Authentication required")
    return email


def require_admin(req) -> str:
    email = get_user_email(req)
    if not email or not is_admin(email):
        raise Forbidden("Forbidden: Admin access required")
    return email
