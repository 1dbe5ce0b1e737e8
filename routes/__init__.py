"""
Flask route blueprints for PickIT.

This module contains all route handlers organized by functionality:
- api: Snapshot polling and health check
- session: Role, onboarding profile, notification permission
- pairing: Shop code scanning and binding
- customer: Quote, submit, withdraw, pay, ready alerts
- operator: Shop setup, rates, pause, status advances, history

Each blueprint is registered with the Flask app in create_app().
"""

from .api import api_bp
from .session import session_bp
from .pairing import pairing_bp
from .customer import customer_bp
from .operator import operator_bp

__all__ = [
    "api_bp",
    "session_bp",
    "pairing_bp",
    "customer_bp",
    "operator_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(api_bp)
    app.register_blueprint(session_bp)
    app.register_blueprint(pairing_bp)
    app.register_blueprint(customer_bp)
    app.register_blueprint(operator_bp)
