import logging

import azure.functions as func

from kpi_weights.errors import InvalidInput, NotFound
from kpi_weights.recalculate import update_kpis_from_dpr
from kpi_weights.store import COLL_DPRS, to_object_id, utcnow
from utils import settings
from utils.db_utils import get_db
from utils.http import error_response, get_json_body, options_response, respond
from utils.rbac import get_user_doc, require_user

settings.bootstrap()

TEXT_FIELDS = ("progress", "challenges", "nextSteps")


def submit_dpr(req: func.HttpRequest) -> func.HttpResponse:
    email = require_user(req)
    body = get_json_body(req)

    if not body.get("projectId"):
        raise InvalidInput("Project ID is required")
    project_id = to_object_id(body["projectId"], "projectId")

    for field in TEXT_FIELDS:
        if body.get(field) is not None and not isinstance(body[field], str):
            raise InvalidInput(f"{field} must be text", field=field)

    user = get_user_doc(email)
    if not user:
        raise NotFound("User not found", email=email)

    db = get_db()
    dpr = {
        "userId": user["_id"],
        "projectId": project_id,
        "date": utcnow(),
        "progress": body.get("progress") or "",
        "challenges": body.get("challenges") or "",
        "nextSteps": body.get("nextSteps") or "",
        "status": "submitted",
    }
    dpr["_id"] = db[COLL_DPRS].insert_one(dpr).inserted_id

    kpi_update = update_kpis_from_dpr(db, user["_id"], project_id, dpr)
    return respond(
        {
            "success": True,
            "message": "DPR submitted to e-Office, KPI metrics updated",
            "dpr": dpr,
            "kpiUpdate": kpi_update,
        },
        201,
    )


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('DPR_Submit_API processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    try:
        if req.method.lower() == "post":
            return submit_dpr(req)
        return respond({"error": "Method not allowed"}, 405)
    except Exception as e:
        return error_response(e)
