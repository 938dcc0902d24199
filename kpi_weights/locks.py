"""
Per-employee advisory locks stored in Mongo.

Every write to an employee's KPI set (explicit application and the
report-triggered recalculation) runs under the employee's lock so two
requests cannot interleave their delete/insert steps. Expired locks are taken
over; a TTL index cleans up after crashed workers.
"""
from __future__ import annotations

import logging
import os
import uuid
from contextlib import contextmanager
from datetime import timedelta

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import ConcurrentUpdate
from .store import COLL_LOCKS, utcnow

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_SEC = 120

# Databases whose lock collection already has its TTL index
_INDEXED: set[str] = set()


def _instance_id() -> str:
    return os.getenv("WEBSITE_INSTANCE_ID") or os.getenv("HOSTNAME") or f"pid-{os.getpid()}"


def _lock_ttl() -> int:
    try:
        return int(os.getenv("KPI_LOCK_TTL_SEC", str(DEFAULT_LOCK_TTL_SEC)))
    except ValueError:
        return DEFAULT_LOCK_TTL_SEC


def employee_lock_key(employee_id) -> str:
    return f"kpi-employee:{employee_id}"


def ensure_lock_indexes(db) -> None:
    if db.name in _INDEXED:
        return
    # TTL index on absolute 'expiresAt' timestamps
    db[COLL_LOCKS].create_index("expiresAt", expireAfterSeconds=0)
    _INDEXED.add(db.name)


def acquire_lock(db, key: str, ttl_sec: int | None = None) -> str | None:
    """Try to acquire a lock. Returns this acquisition's token, or None when the lock is held."""
    ensure_lock_indexes(db)
    col = db[COLL_LOCKS]
    now = utcnow()
    owner = _instance_id()
    token = uuid.uuid4().hex
    ttl = ttl_sec or _lock_ttl()
    doc = {
        "_id": key,
        "owner": owner,
        "token": token,
        "acquiredAt": now,
        "expiresAt": now + timedelta(seconds=ttl),
    }
    try:
        col.insert_one(doc)
        logger.debug(f"[Lock] Acquired '{key}' (owner={owner}, ttl={ttl}s)")
        return token
    except DuplicateKeyError:
        pass

    # Take over an expired lock
    taken = col.find_one_and_update(
        {"_id": key, "expiresAt": {"$lte": now}},
        {"$set": {"owner": owner, "token": token, "acquiredAt": now, "expiresAt": doc["expiresAt"]}},
        return_document=ReturnDocument.AFTER,
    )
    if taken and taken.get("token") == token:
        logger.info(f"[Lock] Took over expired '{key}' (owner={owner})")
        return token

    holder = (col.find_one({"_id": key}) or {}).get("owner")
    logger.warning(f"[Lock] Could not acquire '{key}'; currently held by '{holder}'.")
    return None


def release_lock(db, key: str, token: str) -> None:
    """Release the lock if this acquisition still holds it. Best-effort; the TTL cleans up otherwise."""
    try:
        res = db[COLL_LOCKS].delete_one({"_id": key, "token": token})
        if res.deleted_count == 1:
            logger.debug(f"[Lock] Released '{key}'")
    except PyMongoError as e:
        logger.warning(f"[Lock] Release failed for '{key}': {e}")


@contextmanager
def employee_lock(db, employee_id):
    key = employee_lock_key(employee_id)
    token = acquire_lock(db, key)
    if token is None:
        raise ConcurrentUpdate(
            "Another KPI update is in progress for this employee. Retry shortly.",
            employeeId=str(employee_id),
        )
    try:
        yield
    finally:
        release_lock(db, key, token)
