"""
PrintDispatch - Flask Application Entry Point.

This is a slim app factory that:
1. Configures logging
2. Builds the ledger, job store and upload store
3. Connects the message bus gateway (listener thread)
4. Wires the dispatcher to the gateway's status topics
5. Registers route blueprints and JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Service construction, gateway start
    ├── Flask request handling (threaded)
    └── Cleanup on shutdown (gateway stop)

    MessageBus Thread (background)
    └── Status events -> dispatcher -> job store
"""

from __future__ import annotations

import atexit
import logging
from typing import Any, Dict, Optional

from flask import Flask
from werkzeug.exceptions import HTTPException

from logging_config import setup_logging, get_logger
from core.exceptions import (
    InvalidRequestError,
    InvalidTransitionError,
    MessageBusError,
    NotFoundError,
    PrintDispatchError,
)
from core.message_bus import LocalMessageBus, MessageBusGateway, RedisMessageBus
from models.printer import parse_printers
from services.dispatcher import PrintJobDispatcher
from services.job_store import JobStore
from services.ledger_service import AccountLedger
from services.upload_store import UploadStore
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _build_gateway(config: Dict[str, Any]) -> MessageBusGateway:
    backend = config.get("MESSAGE_BUS_BACKEND", "redis")

    if backend == "local":
        return LocalMessageBus()
    if backend == "redis":
        return RedisMessageBus(
            redis_url=config["REDIS_URL"],
            socket_timeout=config.get("MESSAGE_BUS_SOCKET_TIMEOUT", 5.0),
            reconnect_initial_seconds=config.get("MESSAGE_BUS_RECONNECT_INITIAL", 0.5),
            reconnect_max_seconds=config.get("MESSAGE_BUS_RECONNECT_MAX", 30.0),
        )

    raise ValueError(f"Unknown MESSAGE_BUS_BACKEND: {backend!r}")


def _error_status(error: PrintDispatchError) -> int:
    if isinstance(error, InvalidRequestError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, InvalidTransitionError):
        return 409
    if isinstance(error, MessageBusError):
        return 503
    return 500


def create_app(
    config_object: str = "config.Config",
    overrides: Optional[Dict[str, Any]] = None
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the configuration class
        overrides: Config values applied after config_object (tests)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        log_level=log_level,
        log_dir=app.config.get("LOG_DIR"),
        enable_file_logging=enable_file_logging
    )

    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting PrintDispatch in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    ledger = AccountLedger(
        debit_limit=app.config["LEDGER_DEBIT_LIMIT"],
        credit_limit=app.config["LEDGER_CREDIT_LIMIT"],
    )
    ledger.seed(app.config.get("INITIAL_BALANCES") or {})

    job_store = JobStore()
    upload_store = UploadStore(app.config["UPLOAD_FOLDER"])

    gateway = _build_gateway(app.config)
    dispatcher = PrintJobDispatcher(
        job_store,
        gateway,
        upload_store,
        command_topic=app.config["COMMAND_TOPIC_TEMPLATE"],
        status_pattern=app.config["STATUS_TOPIC_PATTERN"],
    )

    # Subscribe before start so the first connection listens right away
    dispatcher.start()
    gateway.start()

    app.config["LEDGER"] = ledger
    app.config["JOB_STORE"] = job_store
    app.config["UPLOAD_STORE"] = upload_store
    app.config["MESSAGE_BUS"] = gateway
    app.config["DISPATCHER"] = dispatcher
    app.config["PRINTER_REGISTRY"] = parse_printers(app.config.get("PRINTERS", ""))

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        gateway.stop()
        logger.info("Shutdown complete")

    # Tests build many apps and stop their gateways themselves
    if not app.config.get("TESTING"):
        atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(PrintDispatchError)
    def handle_dispatch_error(e: PrintDispatchError):
        status_code = _error_status(e)
        if status_code >= 500:
            logger.error(f"Request failed: {e}")
        body = {"error": e.message}
        if e.details:
            body["details"] = e.details
        return body, status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {"error": e.description}, e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return {"error": "Internal server error"}, 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    app.run(
        host="0.0.0.0",
        port=app.config["PORT"],
        debug=app.config["DEBUG"],
        threaded=True,
        use_reloader=False,
    )
