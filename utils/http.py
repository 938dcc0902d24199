import logging
import os

import azure.functions as func
from bson import json_util

from kpi_weights.errors import InvalidInput, KpiWeightsError


def cors_headers():
    return {
        "Access-Control-Allow-Origin": os.getenv("ALLOWED_ORIGIN", "*"),
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET,POST,PUT,PATCH,DELETE,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def respond(body=None, status=200):
    # json_util handles ObjectId and datetime values straight from Mongo
    return func.HttpResponse(
        json_util.dumps(body, json_options=json_util.RELAXED_JSON_OPTIONS) if body is not None else "",
        status_code=status,
        mimetype="application/json",
        headers=cors_headers(),
    )


def options_response():
    return func.HttpResponse("", status_code=204, headers=cors_headers())


def error_response(exc: Exception):
    """Map pipeline errors to their HTTP status; anything unexpected is a logged 500."""
    if isinstance(exc, KpiWeightsError):
        if exc.status_code >= 500:
            logging.error(f"{exc.__class__.__name__}: {exc.message}", exc_info=exc)
        else:
            logging.info(f"{exc.__class__.__name__}: {exc.message}")
        return respond(exc.to_dict(), exc.status_code)

    logging.error(f"Unhandled error: {exc}", exc_info=exc)
    return respond({"error": str(exc) or "Internal server error"}, 500)


def get_json_body(req: func.HttpRequest) -> dict:
    """Request body as a dict; a missing body is empty, malformed JSON is InvalidInput."""
    if not req.get_body():
        return {}
    try:
        body = req.get_json()
    except ValueError:
        raise InvalidInput("Invalid JSON body")
    if not isinstance(body, dict):
        raise InvalidInput("JSON body must be an object")
    return body
