"""
Wallet routes.

Balance query and deduction for the calling account. Deduction is the
wallet-consuming step that pays for a print; it is not tied to job
creation.
"""

from flask import Blueprint, current_app, request

from core.exceptions import InvalidAmountError
from routes.identity import current_account_key

wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/wallet")


@wallet_bp.route("/balance", methods=["GET"])
def balance():
    ledger = current_app.config["LEDGER"]
    return {"balance": ledger.get_balance(current_account_key())}


@wallet_bp.route("/deduct", methods=["POST"])
def deduct():
    """
    Debit the caller's balance.

    Body: {"amount": int}
    Insufficient funds is a normal 200 response with success=false; an
    invalid amount is a 400 with the same shape.
    """
    account_key = current_account_key()
    body = request.get_json(silent=True) or {}

    ledger = current_app.config["LEDGER"]
    try:
        result = ledger.debit(account_key, body.get("amount"))
    except InvalidAmountError as e:
        return invalid_amount_response(ledger, account_key, e), 400
    return result.to_dict()


def invalid_amount_response(ledger, account_key: str, error: InvalidAmountError) -> dict:
    """Ledger-shaped body for a rejected amount (balance unchanged)."""
    return {
        "success": False,
        "balance": ledger.get_balance(account_key),
        "error": error.message,
    }
