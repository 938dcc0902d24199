import logging

import azure.functions as func

from kpi_weights.application import create_default_kpis, list_employee_kpis
from kpi_weights.errors import InvalidInput
from utils import settings
from utils.db_utils import get_db
from utils.http import error_response, get_json_body, options_response, respond
from utils.rbac import get_user_doc, require_admin, require_user

settings.bootstrap()


def create_defaults(req: func.HttpRequest) -> func.HttpResponse:
    admin_email = require_admin(req)
    body = get_json_body(req)

    user_id = body.get("userId")
    employer_type = body.get("employerType")
    if not user_id or not employer_type:
        raise InvalidInput("userId and employerType required")

    admin = get_user_doc(admin_email)
    kpis = create_default_kpis(get_db(), user_id, employer_type, assigned_by=admin["_id"] if admin else admin_email)
    return respond(
        {
            "success": True,
            "message": f"Created {len(kpis)} default KPIs for {employer_type} employee",
            "data": kpis,
        },
        201,
    )


def get_kpis(req: func.HttpRequest) -> func.HttpResponse:
    require_user(req)

    user_id = req.params.get("userId")
    if not user_id:
        raise InvalidInput("Missing userId parameter")

    project_specific = (req.params.get("isProjectSpecific") or "").lower() == "true"
    employer_type = req.params.get("employerType") or None
    kpis = list_employee_kpis(get_db(), user_id, project_specific=project_specific, employer_type=employer_type)
    return respond({"success": True, "data": kpis})


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('KPI_Defaults_API processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    method = req.method.lower()
    try:
        if method == "post":
            return create_defaults(req)
        if method == "get":
            return get_kpis(req)
        return respond({"error": "Method not allowed"}, 405)
    except Exception as e:
        return error_response(e)
