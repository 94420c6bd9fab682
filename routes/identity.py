"""
Caller identity helpers.

Authentication happens upstream (gateway/proxy); requests arrive with an
already-verified, opaque account key in a header (ACCOUNT_HEADER,
"X-Account-Key" by default). These helpers only read it.
"""

from flask import abort, current_app, request


def current_account_key() -> str:
    """Account key of the caller; aborts with 401 when missing."""
    header = current_app.config.get("ACCOUNT_HEADER", "X-Account-Key")
    account_key = (request.headers.get(header) or "").strip()
    if not account_key:
        abort(401, description="Account key required")
    return account_key


def is_admin(account_key: str) -> bool:
    return account_key in current_app.config.get("ADMIN_ACCOUNT_KEYS", [])


def require_admin() -> str:
    """Account key of an admin caller; aborts with 401/403 otherwise."""
    account_key = current_account_key()
    if not is_admin(account_key):
        abort(403, description="Admin access required")
    return account_key
