"""
Configuration for PrintDispatch.

Values come from environment variables (a .env file is loaded first) with
development-friendly defaults.
"""

import os
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

# Load .env early so the Config class below sees its values
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def parse_balances(value: str) -> Dict[str, int]:
    """
    Parse ``key=amount,key=amount`` into opening balances.

    Example:
        parse_balances("user@example.com=100,123456789=50")
    """
    balances = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        account, _, amount = item.rpartition("=")
        if not account:
            raise ValueError(f"Invalid balance entry: {item!r}")
        balances[account.strip()] = int(amount)
    return balances


def parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "uploads"))
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB uploads
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    PORT = int(os.environ.get("PORT", "3001"))
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))

    # ==========================================================================
    # Message bus
    # ==========================================================================
    # MESSAGE_BUS_BACKEND: "redis" for a real broker, "local" to keep
    # commands in-process (development without printers)
    MESSAGE_BUS_BACKEND = os.environ.get("MESSAGE_BUS_BACKEND", "redis")
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    MESSAGE_BUS_SOCKET_TIMEOUT = float(os.environ.get("MESSAGE_BUS_SOCKET_TIMEOUT", "5"))
    MESSAGE_BUS_RECONNECT_INITIAL = float(os.environ.get("MESSAGE_BUS_RECONNECT_INITIAL", "0.5"))
    MESSAGE_BUS_RECONNECT_MAX = float(os.environ.get("MESSAGE_BUS_RECONNECT_MAX", "30"))

    # Topic layout is broker routing; status is matched by job_id only
    COMMAND_TOPIC_TEMPLATE = os.environ.get("COMMAND_TOPIC_TEMPLATE", "printer/{device_id}/commands")
    STATUS_TOPIC_PATTERN = os.environ.get("STATUS_TOPIC_PATTERN", "printer/*/status")

    # ==========================================================================
    # Ledger
    # ==========================================================================
    LEDGER_DEBIT_LIMIT = int(os.environ.get("LEDGER_DEBIT_LIMIT", "1000"))
    LEDGER_CREDIT_LIMIT = int(os.environ.get("LEDGER_CREDIT_LIMIT", "10000"))
    INITIAL_BALANCES = parse_balances(os.environ.get("INITIAL_BALANCES", "user@example.com=100"))

    # ==========================================================================
    # Identity (verified upstream) and admin
    # ==========================================================================
    ACCOUNT_HEADER = os.environ.get("ACCOUNT_HEADER", "X-Account-Key")
    ADMIN_ACCOUNT_KEYS = parse_list(os.environ.get("ADMIN_ACCOUNT_KEYS", "123456789"))

    # Printer registry shown to admins, "id:status,..."
    PRINTERS = os.environ.get("PRINTERS", "printer3:online,printer4:offline")


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    ENVIRONMENT = "production"


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    MESSAGE_BUS_BACKEND = "local"
    INITIAL_BALANCES: Dict[str, int] = {}
    ADMIN_ACCOUNT_KEYS = ["admin"]
