"""
Configuration centralisée.

Les valeurs viennent des variables d'environnement (éventuellement
chargées depuis un fichier .env), avec des valeurs par défaut
adaptées au développement local.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def get_database_uri() -> str:
    return os.environ.get("DATABASE_URL", "sqlite:///pharmacie.db")


def get_smtp_config() -> dict | None:
    """Retourne la config SMTP, ou None si aucun relais n'est configuré."""
    host = os.environ.get("SMTP_HOST")
    if not host:
        return None
    return dict(
        host=host,
        port=int(os.environ.get("SMTP_PORT", 587)),
        expéditeur=os.environ.get("SMTP_SENDER", "alertes@pharmacy.com"),
    )


# --- Alertes d'inventaire ---

ALERT_EMAIL_RECIPIENT = os.environ.get("ALERT_EMAIL_RECIPIENT", "admin@pharmacy.com")
ALERT_SMS_RECIPIENT = os.environ.get("ALERT_SMS_RECIPIENT", "+1234567890")
EXPIRY_WARNING_DAYS = int(os.environ.get("EXPIRY_WARNING_DAYS", 30))

# --- Passerelles SMS / push (désactivées si vides) ---

SMS_GATEWAY_URL = os.environ.get("SMS_GATEWAY_URL", "")
PUSH_GATEWAY_URL = os.environ.get("PUSH_GATEWAY_URL", "")
GATEWAY_TOKEN = os.environ.get("GATEWAY_TOKEN") or None

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
