"""
KPI application engine.

Applies a project's weight profile to an employee by cloning their default
KPI template into a new project-specific set.

Ordering:
  1. every precondition is checked before anything is written
  2. under the employee lock, the new set is inserted under a fresh scope id
  3. the employee's `activeKpiScope` is switched to that scope
  4. every other project-specific record of the employee is deleted

A failed insert removes the partial new scope and leaves the previous set
untouched. At any time, the live project-specific set is the one whose
`kpiScope` equals `Users.activeKpiScope`.
"""
from __future__ import annotations

import logging
from typing import Any

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from .catalog import (
    DEFAULT_PERIOD,
    EMPLOYER_TYPES,
    TEMPLATES_BY_TYPE,
    channel_for,
    normalize_employer_type,
)
from .dedupe import split_duplicates
from .errors import InvalidInput, PersistenceError, PreconditionFailed
from .locks import employee_lock
from .normalize import WEIGHT_CHANNELS, normalize_weights
from .store import (
    COLL_KPIS,
    COLL_USERS,
    get_employee,
    get_project,
    to_object_id,
    utcnow,
)
from .validation import WEIGHT_TOLERANCE, validate_weight_range, validate_weight_total, weight_total

logger = logging.getLogger(__name__)

# Fields reset on every clone
_RESET_FIELDS = ("_id", "progress", "score", "achievedValue", "status", "progressNotes", "createdAt", "lastUpdated")


def new_scope_id() -> str:
    return str(ObjectId())


def _default_kpis(db, employee_oid: ObjectId, employer_type: str, period: str) -> list[dict]:
    cursor = db[COLL_KPIS].find(
        {
            "assignedTo": employee_oid,
            "isDefault": True,
            "employerType": employer_type,
            "period": period,
        }
    ).sort("_id", 1)
    kept, duplicates = split_duplicates(list(cursor))
    if duplicates:
        logger.warning(f"[Apply] Ignoring {len(duplicates)} duplicate default KPI(s) for employee {employee_oid}")
    return kept


def target_weights(defaults: list[dict], kpi_weights: dict, employer_type: str) -> dict[str, float]:
    """
    Weight of each default KPI under a project profile.

    Names the profile does not know get 0; positive weights are normalized to
    100, zero weights stay 0.
    """
    channel = channel_for(employer_type)
    mapped: dict[str, Any] = {}
    for kpi in defaults:
        pair = kpi_weights.get(kpi["kpiName"])
        mapped[kpi["kpiName"]] = pair.get(channel, 0) if isinstance(pair, dict) else 0

    positive = {name: w for name, w in mapped.items() if isinstance(w, (int, float)) and not isinstance(w, bool) and w > 0}
    normalized = normalize_weights(positive)
    return {name: normalized.get(name, 0) for name in mapped}


def _clone(default_kpi: dict, weight: float, project: dict, scope: str, now) -> dict:
    doc = {k: v for k, v in default_kpi.items() if k not in _RESET_FIELDS}
    doc.update(
        {
            "weightage": weight,
            "originalWeightage": default_kpi.get("weightage"),
            "isDefault": False,
            "isProjectSpecific": True,
            "projectId": project["_id"],
            "projectName": project.get("name"),
            "kpiScope": scope,
            "progress": 0,
            "score": 0,
            "achievedValue": 0,
            "status": "not_started",
            "progressNotes": (
                f'KPI created for project "{project.get("name")}" with a weight of {weight}%. '
                f'(Original default weight was {default_kpi.get("weightage")}%).'
            ),
            "createdAt": now,
            "lastUpdated": now,
        }
    )
    return doc


def apply_project_weights(db, project_id: Any, employee_id: Any, period: str = DEFAULT_PERIOD) -> dict:
    """Replace the employee's project-specific KPI set with one derived from the project's weights."""
    # Preconditions, strictly before any write
    project = get_project(db, project_id)
    kpi_weights = project.get("kpiWeights")
    if not isinstance(kpi_weights, dict) or not kpi_weights:
        raise PreconditionFailed("Project does not have KPI weights", projectId=str(project["_id"]))

    employee = get_employee(db, employee_id)
    employer_type = normalize_employer_type(employee.get("employerType"))

    defaults = _default_kpis(db, employee["_id"], employer_type, period)
    if not defaults:
        raise PreconditionFailed(
            "No default KPIs found for this employee. Please add default KPIs first.",
            employeeId=str(employee["_id"]),
            period=period,
        )

    weights = target_weights(defaults, kpi_weights, employer_type)
    check = validate_weight_total(weights)
    if not check["valid"]:
        raise PreconditionFailed(
            f"Project has no usable weights for {employer_type} employees",
            projectId=str(project["_id"]),
            employerType=employer_type,
            total=check["total"],
        )

    with employee_lock(db, employee["_id"]):
        scope = new_scope_id()
        now = utcnow()
        docs = [_clone(kpi, weights[kpi["kpiName"]], project, scope, now) for kpi in defaults]

        kpis = db[COLL_KPIS]
        try:
            result = kpis.insert_many(docs, ordered=True)
            created = len(result.inserted_ids)
            db[COLL_USERS].update_one(
                {"_id": employee["_id"]},
                {
                    "$set": {
                        "activeKpiScope": scope,
                        "activeProjectId": project["_id"],
                        "hasAIKPI": True,
                        "updatedAt": now,
                    },
                    "$inc": {"kpiVersion": 1},
                },
            )
        except PyMongoError as e:
            logger.error(f"[Apply] Insert of scope {scope} failed for employee {employee['_id']}: {e}")
            try:
                kpis.delete_many({"assignedTo": employee["_id"], "kpiScope": scope})
            except PyMongoError as cleanup_error:
                logger.error(f"[Apply] Cleanup of scope {scope} failed: {cleanup_error}")
            raise PersistenceError("Failed to store project KPIs", employeeId=str(employee["_id"])) from e

        deleted = kpis.delete_many(
            {
                "assignedTo": employee["_id"],
                "isProjectSpecific": True,
                "kpiScope": {"$ne": scope},
            }
        ).deleted_count

    total = round(sum(d["weightage"] for d in docs), 2)
    logger.info(
        f"[Apply] {employee.get('name')} <- '{project.get('name')}': created={created} "
        f"removed={deleted} total={total}% scope={scope}"
    )
    return {
        "projectName": project.get("name"),
        "employeeName": employee.get("name"),
        "employeeId": str(employee["_id"]),
        "updatedCount": created,
        "deletedCount": deleted,
        "totalWeightage": total,
        "kpiScope": scope,
    }


def create_default_kpis(db, user_id: Any, employer_type: str, assigned_by: Any = None) -> list[dict]:
    """Create the default KPI template of an employer type for a user. Only once per user."""
    if employer_type not in EMPLOYER_TYPES:
        raise InvalidInput(f"employerType must be one of {list(EMPLOYER_TYPES)}", employerType=employer_type)

    user = get_employee(db, user_id)
    kpis = db[COLL_KPIS]
    if kpis.count_documents({"assignedTo": user["_id"], "isDefault": True}, limit=1):
        raise PreconditionFailed("Default KPIs already exist for this user", userId=str(user["_id"]))

    now = utcnow()
    docs = []
    for template in TEMPLATES_BY_TYPE[employer_type]:
        doc = dict(template)
        doc.update(
            {
                "title": template["kpiName"],
                "assignedTo": user["_id"],
                "assignedBy": assigned_by,
                "isDefault": True,
                "isProjectSpecific": False,
                "source": "e-office",
                "readOnly": True,
                "employerType": employer_type,
                "status": "not_started",
                "progress": 0,
                "score": 0,
                "createdAt": now,
                "lastUpdated": now,
            }
        )
        docs.append(doc)

    kpis.insert_many(docs)
    db[COLL_USERS].update_one({"_id": user["_id"]}, {"$set": {"employerType": employer_type}})
    logger.info(f"[Defaults] Created {len(docs)} default KPIs for {employer_type} employee {user.get('name')}")
    return docs


def list_employee_kpis(db, user_id: Any, project_specific: bool | None = None, employer_type: str | None = None) -> list[dict]:
    query: dict[str, Any] = {"assignedTo": to_object_id(user_id, "userId")}
    if project_specific:
        query["isProjectSpecific"] = True
    if employer_type:
        query["employerType"] = employer_type
    return list(db[COLL_KPIS].find(query).sort("createdAt", DESCENDING))


def get_active_kpis(db, employee: dict) -> list[dict]:
    """The live project-specific set, or the default template when there is none."""
    kpis = db[COLL_KPIS]
    scope = employee.get("activeKpiScope")
    if scope:
        active = list(kpis.find({"assignedTo": employee["_id"], "isProjectSpecific": True, "kpiScope": scope}))
        if active:
            return active
    return list(kpis.find({"assignedTo": employee["_id"], "isDefault": True}))


def preview_project_weights(db, project_id: Any) -> dict:
    """Read-only view of a project's weight profile with per-channel totals and validity."""
    project = get_project(db, project_id)
    kpi_weights = project.get("kpiWeights")
    if not isinstance(kpi_weights, dict) or not kpi_weights:
        raise PreconditionFailed("Project does not have KPI weights", projectId=str(project["_id"]))

    channels: dict[str, dict[str, Any]] = {c: {} for c in WEIGHT_CHANNELS}
    rows = []
    for name, pair in kpi_weights.items():
        pair = pair if isinstance(pair, dict) else {}
        row = {"kpiName": name}
        for channel in WEIGHT_CHANNELS:
            channels[channel][name] = pair.get(channel, 0)
            row[channel] = pair.get(channel, 0)
        rows.append(row)

    field, hq = channels["fieldWeight"], channels["hqWeight"]
    return {
        "projectName": project.get("name"),
        "projectId": str(project["_id"]),
        "kpiWeightsSource": project.get("kpiWeightsSource"),
        "kpiWeights": rows,
        "fieldWeights": field,
        "hqWeights": hq,
        "totals": {"field": weight_total(field), "hq": weight_total(hq)},
        "validity": {
            "field": validate_weight_total(field, WEIGHT_TOLERANCE),
            "hq": validate_weight_total(hq, WEIGHT_TOLERANCE),
            "fieldRange": validate_weight_range(field),
            "hqRange": validate_weight_range(hq),
        },
    }
