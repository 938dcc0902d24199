import logging

import azure.functions as func
from pymongo import ReturnDocument

from kpi_weights.application import get_active_kpis
from kpi_weights.errors import Forbidden, InvalidInput, NotFound
from kpi_weights.scoring import apar_final_score, apar_weighted_score
from kpi_weights.store import COLL_APARS, get_employee, to_object_id, utcnow
from utils import settings
from utils.db_utils import get_db
from utils.http import error_response, get_json_body, options_response, respond
from utils.rbac import get_user_doc, is_admin, require_admin, require_user

settings.bootstrap()

APAR_STATUSES = ("draft", "submitted", "reviewed", "finalized")
FINAL_STATUSES = ("reviewed", "finalized")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def analyze_apar(req: func.HttpRequest) -> func.HttpResponse:
    reviewer = require_admin(req)
    body = get_json_body(req)

    if not body.get("employeeId"):
        raise InvalidInput("Employee ID is required")
    eoffice_score = body.get("eofficeScore")
    if not _is_number(eoffice_score) or not eoffice_score:
        raise InvalidInput("E-office score is required")

    db = get_db()
    employee = get_employee(db, body["employeeId"])
    year = body.get("year") or utcnow().year

    apar = db[COLL_APARS].find_one_and_update(
        {"employee": employee["_id"], "year": year},
        {
            "$set": {
                "reviewerScore": eoffice_score,
                "finalScore": eoffice_score,
                "status": "reviewed",
                "reviewer": reviewer,
                "updatedAt": utcnow(),
            },
            "$setOnInsert": {
                "selfAppraisal": {"achievements": "", "challenges": "", "innovations": ""},
                "createdAt": utcnow(),
            },
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )

    return respond(
        {
            "success": True,
            "data": {
                "totalAparScore": eoffice_score,
                "aparScore30Percent": apar_weighted_score(eoffice_score),
                "apar": apar,
            },
        }
    )


def _load_apar(db, apar_id: str) -> dict:
    apar = db[COLL_APARS].find_one({"_id": to_object_id(apar_id, "aparId")})
    if not apar:
        raise NotFound("APAR not found", aparId=apar_id)
    return apar


def _caller(req: func.HttpRequest):
    email = require_user(req)
    return email, is_admin(email), get_user_doc(email)


def _is_owner(apar: dict, user: dict | None) -> bool:
    if not user:
        return False
    return user["_id"] in (apar.get("employee"), apar.get("userId"))


def _closing_fields(db, apar: dict, status: str, reviewer_score) -> dict:
    """Final score for a reviewed or finalized APAR; finalizing drops the employee's other APARs."""
    employee = get_employee(db, apar["employee"])
    fields = {"finalScore": apar_final_score(get_active_kpis(db, employee), reviewer_score)}
    if status == "finalized":
        removed = db[COLL_APARS].delete_many({"_id": {"$ne": apar["_id"]}, "employee": apar["employee"]}).deleted_count
        if removed:
            logging.info(f"[APAR] Removed {removed} superseded APAR(s) for employee {apar['employee']}")
    return fields


def get_apar(req: func.HttpRequest, apar_id: str) -> func.HttpResponse:
    _, admin, user = _caller(req)
    apar = _load_apar(get_db(), apar_id)
    if not admin and not _is_owner(apar, user):
        raise Forbidden("You do not have permission to view this APAR")
    return respond({"success": True, "data": apar})


def open_own_apar(req: func.HttpRequest) -> func.HttpResponse:
    """The caller's APAR for the year, created as a draft when missing."""
    email, _, user = _caller(req)
    if not user:
        raise NotFound("User not found", email=email)
    body = get_json_body(req)
    year = body.get("year") or utcnow().year

    apar = get_db()[COLL_APARS].find_one_and_update(
        {"employee": user["_id"], "year": year},
        {
            "$setOnInsert": {
                "status": "draft",
                "selfAppraisal": {"achievements": "", "challenges": "", "innovations": ""},
                "createdAt": utcnow(),
                "updatedAt": utcnow(),
            }
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return respond({"success": True, "data": apar})


def update_apar(req: func.HttpRequest, apar_id: str) -> func.HttpResponse:
    """
    PATCH/PUT of an APAR.

    Draft: the owner may edit `selfAppraisal` and move it to `submitted`;
    other fields from a non-admin owner are ignored. Anything past draft is
    admin-only. Moving to reviewed or finalized recalculates the final score.
    """
    email, admin, user = _caller(req)
    body = get_json_body(req)

    status = body.get("status")
    if status is not None and status not in APAR_STATUSES:
        raise InvalidInput(f"status must be one of {list(APAR_STATUSES)}", status=status)
    reviewer_score = body.get("reviewerScore")
    if reviewer_score is not None and not _is_number(reviewer_score):
        raise InvalidInput("reviewerScore must be a number")
    self_appraisal = body.get("selfAppraisal")
    if self_appraisal is not None and not isinstance(self_appraisal, dict):
        raise InvalidInput("selfAppraisal must be an object")

    db = get_db()
    apar = _load_apar(db, apar_id)
    current = apar.get("status", "draft")

    if current == "draft":
        if not admin and not _is_owner(apar, user):
            raise Forbidden("You do not have permission to edit this APAR")
    elif current == "submitted":
        if not admin:
            raise Forbidden("Only reviewers can modify submitted APARs")
    elif not admin:
        raise Forbidden("Finalized APARs can only be modified by administrators")

    update = {}
    if admin:
        if self_appraisal:
            update["selfAppraisal"] = self_appraisal
        if "reviewerComments" in body:
            update["reviewerComments"] = body["reviewerComments"]
        if reviewer_score is not None:
            update["reviewerScore"] = reviewer_score
        if status:
            update["status"] = status
            update["reviewer"] = email
    else:
        if self_appraisal:
            update["selfAppraisal"] = self_appraisal
        if status == "submitted":
            update["status"] = status

    new_status = update.get("status")
    if new_status in FINAL_STATUSES:
        score = reviewer_score if reviewer_score is not None else apar.get("reviewerScore")
        update.update(_closing_fields(db, apar, new_status, score))

    update["updatedAt"] = utcnow()
    updated = db[COLL_APARS].find_one_and_update(
        {"_id": apar["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    logging.info(f"[APAR] {email} updated {apar_id}: {current} -> {updated.get('status')}")
    return respond({"success": True, "data": updated})


def finalize_apar(req: func.HttpRequest, apar_id: str) -> func.HttpResponse:
    reviewer = require_admin(req)
    body = get_json_body(req)

    status = body.get("status") or "finalized"
    if status not in FINAL_STATUSES:
        raise InvalidInput(f"status must be one of {list(FINAL_STATUSES)}", status=status)

    db = get_db()
    apar = _load_apar(db, apar_id)
    reviewer_score = body.get("reviewerScore")
    if reviewer_score is not None and not _is_number(reviewer_score):
        raise InvalidInput("reviewerScore must be a number")
    if reviewer_score is None:
        reviewer_score = apar.get("reviewerScore")

    update = {
        "reviewerScore": reviewer_score,
        "status": status,
        "reviewer": reviewer,
        "updatedAt": utcnow(),
    }
    if "reviewerComments" in body:
        update["reviewerComments"] = body["reviewerComments"]
    update.update(_closing_fields(db, apar, status, reviewer_score))

    updated = db[COLL_APARS].find_one_and_update(
        {"_id": apar["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    return respond({"success": True, "data": updated})


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('APAR_API processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    # Simple Routing
    route = (req.route_params.get('route') or '').strip('/')
    parts = route.split('/') if route else []
    method = req.method.lower()

    try:
        if parts == ['analyze']:
            if method == 'post':
                return analyze_apar(req)

        elif parts == ['self']:
            if method == 'post':
                return open_own_apar(req)

        elif len(parts) == 2 and parts[1] == 'finalize':
            if method == 'post':
                return finalize_apar(req, parts[0])

        elif len(parts) == 1:
            if method == 'get':
                return get_apar(req, parts[0])
            if method in ('patch', 'put'):
                return update_apar(req, parts[0])

        return respond({"error": "Not found"}, 404)
    except Exception as e:
        return error_response(e)
