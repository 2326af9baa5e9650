import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "quotation_engine.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", True)
    DB_BUSY_TIMEOUT_SECONDS = _int_env("DB_BUSY_TIMEOUT_SECONDS", 15)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-quotation-engine")
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APPROVAL_FAN_OUT = _int_env("APPROVAL_FAN_OUT", 2)
    APPROVAL_ENFORCE_LEVEL_ORDER = _bool_env("APPROVAL_ENFORCE_LEVEL_ORDER", False)
    REJECTION_CANCELS_PENDING_SIBLINGS = _bool_env("REJECTION_CANCELS_PENDING_SIBLINGS", False)
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")
    LIST_PAGE_LIMIT_MAX = _int_env("LIST_PAGE_LIMIT_MAX", 100)

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    MAIL_ENABLED = _bool_env("MAIL_ENABLED", False)
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = _int_env("MAIL_PORT", 587)
    MAIL_USE_TLS = _bool_env("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "no-reply@quotation-engine.local")
    MAIL_SUPPRESS_SEND = _bool_env("MAIL_SUPPRESS_SEND", False)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL nao definida para ambiente de producao.")
        if env == "production" and self.SECRET_KEY == "dev-secret-quotation-engine":
            raise RuntimeError("SECRET_KEY insegura para producao.")
