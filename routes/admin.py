"""
Admin routes.

Read views over printers, jobs and wallets, plus the wallet adjustment
that tops up an account (ledger credit). Every route requires an admin
account key.
"""

from flask import Blueprint, current_app, request

from core.exceptions import InvalidAmountError
from routes.identity import require_admin
from routes.wallet import invalid_amount_response
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.route("/printers", methods=["GET"])
def printers():
    require_admin()
    registry = current_app.config.get("PRINTER_REGISTRY", [])
    return {"printers": [printer.to_dict() for printer in registry]}


@admin_bp.route("/jobs", methods=["GET"])
def jobs():
    require_admin()
    dispatcher = current_app.config["DISPATCHER"]
    return {
        "jobs": [
            dict(job.to_dict(), accountKey=job.account_key)
            for job in dispatcher.list_all_jobs()
        ]
    }


@admin_bp.route("/wallets", methods=["GET"])
def wallets():
    require_admin()
    ledger = current_app.config["LEDGER"]
    return {"wallets": ledger.accounts()}


@admin_bp.route("/wallet/adjust", methods=["POST"])
def adjust_wallet():
    """
    Credit an account.

    Body: {"accountKey": str, "amount": int}
    """
    admin_key = require_admin()
    body = request.get_json(silent=True) or {}

    account_key = body.get("accountKey")
    if not isinstance(account_key, str) or not account_key.strip():
        return {"success": False, "error": "accountKey is required"}, 400

    ledger = current_app.config["LEDGER"]
    try:
        result = ledger.credit(account_key, body.get("amount"))
    except InvalidAmountError as e:
        return invalid_amount_response(ledger, account_key, e), 400
    logger.info(f"Admin {admin_key} credited {account_key}")
    return result.to_dict()
