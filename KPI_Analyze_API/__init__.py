import logging

import azure.functions as func

from kpi_weights.errors import InvalidInput
from kpi_weights.scoring import analyze_all, analyze_employee
from utils import settings
from utils.db_utils import get_db
from utils.http import error_response, get_json_body, options_response, respond
from utils.rbac import require_admin

settings.bootstrap()


def analyze(req: func.HttpRequest) -> func.HttpResponse:
    require_admin(req)
    body = get_json_body(req)

    if body.get("all") is True:
        results = analyze_all(get_db())
        return respond({"success": True, "analyzedCount": len(results), "results": results})

    employee_id = body.get("employeeId")
    if not employee_id:
        raise InvalidInput("Employee ID is required")

    result = analyze_employee(get_db(), employee_id)
    return respond({"success": True, **result})


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('KPI_Analyze_API processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    try:
        if req.method.lower() == "post":
            return analyze(req)
        return respond({"error": "Method not allowed"}, 405)
    except Exception as e:
        return error_response(e)
