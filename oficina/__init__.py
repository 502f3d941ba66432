# oficina/__init__.py
from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .extensions import init_extensions, csrf, db
from .core.errors import ServiceError
from .core.models import ensure_admin

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _setup_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
    app.logger.setLevel(level)


def create_app(config_object="config.Config"):
    app = Flask(__name__)

    # Config básica
    app.config.from_object(config_object)
    # Segurança adicional padrão
    app.config.setdefault("SESSION_COOKIE_SAMESITE", "Lax")
    app.config.setdefault("SESSION_COOKIE_SECURE", False)
    app.config.setdefault("WTF_CSRF_TIME_LIMIT", None)

    _setup_logging(app)
    init_extensions(app)

    # Blueprints (API JSON, sem token CSRF)
    from .auth.routes import bp as auth_bp
    from .views.cash_flow import bp as cash_flow_bp
    from .views.clients import bp as clients_bp
    from .views.service_orders import bp as service_orders_bp
    from .views.service_items import bp as service_items_bp
    from .views.budgets import bp as budgets_bp
    from .views.organizations import bp as organizations_bp
    from .views.users import bp as users_bp

    for bp, prefix in (
        (auth_bp, "/api/auth"),
        (cash_flow_bp, "/api/cash-flow"),
        (clients_bp, "/api/clients"),
        (service_orders_bp, "/api/service-orders"),
        (service_items_bp, "/api/service-items"),
        (budgets_bp, "/api/budgets"),
        (organizations_bp, "/api/organizations"),
        (users_bp, "/api/users"),
    ):
        csrf.exempt(bp)
        app.register_blueprint(bp, url_prefix=prefix)

    # Healthcheck simples
    @app.get("/health")
    def health():
        return jsonify(ok=True)

    # Erros
    @app.errorhandler(ServiceError)
    def service_error(e: ServiceError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        code = {404: "not_found", 405: "method_not_allowed"}.get(e.code, "error")
        return jsonify(error=e.description, code=code), e.code

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Erro não tratado: %r", getattr(e, "original_exception", e))
        return jsonify(error="Erro interno do servidor.", code="internal"), 500

    # Primeira execução: cria tabelas, organização padrão e admin
    with app.app_context():
        db.create_all()
        if app.config.get("SEED_ADMIN", True):
            ensure_admin()

    return app
