import os
from datetime import timedelta


def normalize_database_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    return url


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in (None, "") else float(default)
    except (TypeError, ValueError):
        return float(default)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = normalize_database_url(
        os.getenv("DATABASE_URL", "sqlite:///matic.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_UPLOAD_FOLDER = "/var/data/uploads" if os.path.isdir("/var/data") else "matic/static/uploads"
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", DEFAULT_UPLOAD_FOLDER)
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", 10 * 1024 * 1024))
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"
    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "matic_session")
    PERMANENT_SESSION_LIFETIME = timedelta(
        hours=int(os.getenv("SESSION_LIFETIME_HOURS", "24"))
    )
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_VISION_MODEL = os.getenv("OPENAI_VISION_MODEL", "gpt-4.1-mini")
    OPENAI_RECEIPT_MODEL = os.getenv("OPENAI_RECEIPT_MODEL", "gpt-4o")
    OPENAI_CHAT_MODEL = os.getenv("OPENAI_CHAT_MODEL", "gpt-4.1-mini")
    AI_OVERLOAD_RETRY_SECONDS = _env_float("AI_OVERLOAD_RETRY_SECONDS", 5.0)

    USDA_API_KEY = os.getenv("USDA_API_KEY") or os.getenv("FDC_API_KEY") or "DEMO_KEY"
    USDA_TIMEOUT_SECONDS = _env_float("USDA_TIMEOUT_SECONDS", 8.0)

    # Plausibility limits applied to per-100g nutrition database records.
    NUTRITION_VEGETABLE_MAX_KCAL = _env_float("NUTRITION_VEGETABLE_MAX_KCAL", 100.0)
    NUTRITION_LEAN_PROTEIN_MIN_G = _env_float("NUTRITION_LEAN_PROTEIN_MIN_G", 15.0)
    NUTRITION_LEAN_PROTEIN_MAX_CARBS_G = _env_float("NUTRITION_LEAN_PROTEIN_MAX_CARBS_G", 2.0)
    NUTRITION_ENERGY_TOLERANCE = _env_float("NUTRITION_ENERGY_TOLERANCE", 0.30)
