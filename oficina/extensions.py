# oficina/extensions.py
from __future__ import annotations

import sqlite3

from flask import jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager, AnonymousUserMixin
from flask_wtf import CSRFProtect
from flask_mail import Mail
from flask_cors import CORS
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
mail = Mail()


# Ativa FKs no SQLite (cascata por organização depende disso)
@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class _Anon(AnonymousUserMixin):
    role = None


def init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    mail.init_app(app)
    CORS(app, supports_credentials=True, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Import tardio para evitar import circular
    from oficina.core.models import User  # noqa

    login_manager.anonymous_user = _Anon

    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    # API JSON: sem redirect para tela de login
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify(error="Você precisa estar logado.", code="unauthorized"), 401
