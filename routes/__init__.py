"""
Flask route blueprints for PrintDispatch.

This module contains all route handlers organized by functionality:
- main: Liveness and health
- upload: PDF upload and file serving for printers
- wallet: Balance and deduction for the caller
- print_jobs: Job creation, status, listing, HTTP status callback
- admin: Printers, all jobs, wallets, wallet adjustment

Each blueprint is registered with the Flask app in create_app().
"""

from .main import main_bp
from .upload import upload_bp
from .wallet import wallet_bp
from .print_jobs import print_bp
from .admin import admin_bp

__all__ = [
    "main_bp",
    "upload_bp",
    "wallet_bp",
    "print_bp",
    "admin_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(main_bp)
    app.register_blueprint(upload_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(print_bp)
    app.register_blueprint(admin_bp)
