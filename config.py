# config.py
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///oficina.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Fonte das permissões do financeiro: "member" (Member + MemberRole) ou "user_role" (tabela plana)
    PERMISSION_SOURCE = os.getenv("PERMISSION_SOURCE", "member")
    # Parcelamento: True faz a última parcela absorver o resíduo de arredondamento
    CASH_FLOW_EXACT_INSTALLMENTS = _env_bool("CASH_FLOW_EXACT_INSTALLMENTS", False)

    INVITATION_TTL_HOURS = int(os.getenv("INVITATION_TTL_HOURS", "48"))
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")

    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "25"))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", False)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "oficina@localhost")
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    SEED_ADMIN = _env_bool("SEED_ADMIN", True)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    SEED_ADMIN = False
    LOG_LEVEL = "WARNING"
    PERMISSION_SOURCE = "member"
    CASH_FLOW_EXACT_INSTALLMENTS = False
