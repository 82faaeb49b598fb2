"""
Configuration lue depuis l'environnement.

Chaque valeur a un défaut utilisable en développement ; en production
on surcharge par variables d'environnement.
"""

from __future__ import annotations

import os


def get_database_uri() -> str:
    return os.environ.get("BATCH_INVENTORY_DB_URI", "sqlite:///batch_inventory.db")


def get_smtp_host() -> str:
    return os.environ.get("BATCH_INVENTORY_SMTP_HOST", "localhost")


def get_smtp_port() -> int:
    return int(os.environ.get("BATCH_INVENTORY_SMTP_PORT", "587"))


def get_alerts_recipient() -> str:
    return os.environ.get("BATCH_INVENTORY_ALERTS_TO", "stock@example.com")


def get_log_level() -> str:
    return os.environ.get("BATCH_INVENTORY_LOG_LEVEL", "INFO").upper()


def get_retry_attempts() -> int:
    return int(os.environ.get("BATCH_INVENTORY_RETRY_ATTEMPTS", "3"))
