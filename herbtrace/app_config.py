# herbtrace/app_config.py

import logging
import os

from pydantic import BaseModel, Field, field_validator

RELOAD_POLICIES = ("always", "on_change")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default) == "1"


class Settings(BaseModel):
    tracking_origin: str = "http://localhost:5000"
    mongo_uri: str = "mongodb://localhost:27017/herbtrace_db"
    disable_mongo: bool = False
    mongo_timeout_ms: int = Field(default=5000, gt=0)
    reload_policy: str = "always"
    substring_match: bool = True
    qr_fill_color: str = "#2D5A27"
    qr_back_color: str = "#FFFFFF"
    log_level: str = "INFO"
    secret_key: bytes = Field(default_factory=lambda: os.urandom(24))

    @field_validator("reload_policy")
    @classmethod
    def _known_policy(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in RELOAD_POLICIES:
            raise ValueError(f"LEDGER_RELOAD_POLICY must be one of {', '.join(RELOAD_POLICIES)}")
        return v

    @field_validator("tracking_origin")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")


def load_settings() -> Settings:
    """
    Read all settings from the environment in one place.
    """
    values = {
        "tracking_origin": os.getenv("TRACKING_ORIGIN", "http://localhost:5000"),
        "mongo_uri": os.getenv("MONGO_URI", "mongodb://localhost:27017/herbtrace_db"),
        "disable_mongo": _flag("DISABLE_MONGO", "0"),
        "mongo_timeout_ms": int(os.getenv("MONGO_TIMEOUT_MS", "5000")),
        "reload_policy": os.getenv("LEDGER_RELOAD_POLICY", "always"),
        "substring_match": _flag("RESOLVER_SUBSTRING_MATCH", "1"),
        "qr_fill_color": os.getenv("QR_FILL_COLOR", "#2D5A27"),
        "qr_back_color": os.getenv("QR_BACK_COLOR", "#FFFFFF"),
        "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
    }
    secret = os.getenv("SECRET_KEY")
    if secret:
        values["secret_key"] = secret.encode("utf-8")
    return Settings(**values)


def load_config(app, settings: Settings):
    """
    Copy settings into Flask app.config.
    """
    # ------------------------------
    # Mongo
    # ------------------------------
    app.config["MONGO_URI"] = settings.mongo_uri
    app.config["DISABLE_MONGO"] = settings.disable_mongo

    # ------------------------------
    # Tracking codes
    # ------------------------------
    app.config["TRACKING_ORIGIN"] = settings.tracking_origin

    # ------------------------------
    # Security Keys
    # ------------------------------
    app.config["SECRET_KEY"] = settings.secret_key

    logging.getLogger(__name__).info("config loaded (origin=%s)", settings.tracking_origin)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
