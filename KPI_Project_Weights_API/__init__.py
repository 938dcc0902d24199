import logging

import azure.functions as func

from kpi_weights.application import apply_project_weights, preview_project_weights
from kpi_weights.catalog import DEFAULT_PERIOD
from kpi_weights.errors import InvalidInput
from utils import settings
from utils.db_utils import get_db
from utils.http import error_response, get_json_body, options_response, respond
from utils.rbac import require_admin

settings.bootstrap()


def apply_weights(req: func.HttpRequest) -> func.HttpResponse:
    admin_email = require_admin(req)
    body = get_json_body(req)

    project_id = body.get("projectId")
    employee_id = body.get("employeeId")
    if not project_id or not employee_id:
        raise InvalidInput("Missing required fields: projectId, employeeId")

    data = apply_project_weights(get_db(), project_id, employee_id, period=body.get("period") or DEFAULT_PERIOD)
    logging.info(f"[Apply] Requested by {admin_email}")
    return respond(
        {
            "success": True,
            "message": (
                f"Successfully created {data['updatedCount']} project-specific KPIs for "
                f"{data['employeeName']} based on \"{data['projectName']}\"."
            ),
            "data": data,
        },
        201,
    )


def preview_weights(req: func.HttpRequest) -> func.HttpResponse:
    require_admin(req)

    project_id = req.params.get("projectId")
    if not project_id:
        raise InvalidInput("Missing projectId parameter")

    return respond({"success": True, **preview_project_weights(get_db(), project_id)})


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('KPI_Project_Weights_API processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    method = req.method.lower()
    try:
        if method == "post":
            return apply_weights(req)
        if method == "get":
            return preview_weights(req)
        return respond({"error": "Method not allowed"}, 405)
    except Exception as e:
        return error_response(e)
