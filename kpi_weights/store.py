"""Collection names and small Mongo helpers shared by the engine modules."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId

from .errors import InvalidInput, NotFound

COLL_USERS = "Users"
COLL_PROJECTS = "Projects"
COLL_KPIS = "Kpis"
COLL_KPI_SUMMARIES = "KpiSummaries"
COLL_DPRS = "DPRs"
COLL_APARS = "Apars"
COLL_LOCKS = "Job_Locks"


def utcnow() -> datetime:
    # Naive UTC, the way pymongo hands datetimes back by default
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any, field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value:
        raise InvalidInput(f"Missing {field}", field=field)
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise InvalidInput(f"Invalid {field} format", field=field, value=str(value))


def get_employee(db, employee_id: Any) -> dict:
    employee = db[COLL_USERS].find_one({"_id": to_object_id(employee_id, "employeeId")})
    if not employee:
        raise NotFound("Employee not found", employeeId=str(employee_id))
    return employee


def get_project(db, project_id: Any) -> dict:
    project = db[COLL_PROJECTS].find_one({"_id": to_object_id(project_id, "projectId")})
    if not project:
        raise NotFound("Project not found", projectId=str(project_id))
    return project
