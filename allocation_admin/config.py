import os
from datetime import timedelta


def _env_bool(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    ENV = os.getenv("FLASK_ENV", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)

    # console origin(s), comma separated
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # third-party reporting API
    REPORTING_API_BASE_URL = os.environ.get(
        "REPORTING_API_BASE_URL", "https://api.securecheckout.com/v1/reporting"
    )
    REPORTING_API_TOKEN = os.environ.get("REPORTING_API_TOKEN")
    REPORTING_API_TIMEOUT = float(os.environ.get("REPORTING_API_TIMEOUT", "10"))

    # False restores the permissive behaviour where two tiers may share a level
    ENFORCE_UNIQUE_TIER_LEVELS = _env_bool("ENFORCE_UNIQUE_TIER_LEVELS", True)

    @staticmethod
    def init_app(app):
        uri = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URI")
        if not uri:
            os.makedirs(app.instance_path, exist_ok=True)
            uri = f"sqlite:///{os.path.join(app.instance_path, 'allocations.db')}"
        app.config["SQLALCHEMY_DATABASE_URI"] = uri
