import logging

import azure.functions as func

from utils import settings
from utils.http import error_response, options_response, respond
from utils.rbac import get_user_doc, get_user_email, is_admin

settings.bootstrap()


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info('WhoAmI processed a request.')

    if req.method == "OPTIONS":
        return options_response()

    try:
        # 1. Identity
        email = get_user_email(req)
        if not email:
            logging.info("WhoAmI: No identity found.")
            return respond({"error": "No identity found"}, 401)

        # 2. Resolve role
        is_admin_user = is_admin(email)
        user = get_user_doc(email) or {}
        logging.info(f"WhoAmI: User={email}, IsAdmin={is_admin_user}")

        response_data = {
            "email": email,
            "userId": str(user["_id"]) if user.get("_id") else None,
            "name": user.get("name"),
            "employerType": user.get("employerType"),
            "roles": ["admin"] if is_admin_user else ["employee"],
            "is_admin": is_admin_user,
        }
        return respond(response_data)
    except Exception as e:
        return error_response(e)
