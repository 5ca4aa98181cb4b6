import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    # Revision risk thresholds
    risk_warning_days: int
    risk_required_days: int
    risk_min_conformity_score: float
    risk_max_non_conformities: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    return int(raw)


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    return float(raw)


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///tqms.db"),
        risk_warning_days=_getenv_int("RISK_WARNING_DAYS", 90),
        risk_required_days=_getenv_int("RISK_REQUIRED_DAYS", 180),
        risk_min_conformity_score=_getenv_float("RISK_MIN_CONFORMITY_SCORE", 70),
        risk_max_non_conformities=_getenv_int("RISK_MAX_NON_CONFORMITIES", 3),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "RISK_WARNING_DAYS": s.risk_warning_days,
        "RISK_REQUIRED_DAYS": s.risk_required_days,
        "RISK_MIN_CONFORMITY_SCORE": s.risk_min_conformity_score,
        "RISK_MAX_NON_CONFORMITIES": s.risk_max_non_conformities,
        # JSON API only; keep payloads small
        "MAX_CONTENT_LENGTH": 2 * 1024 * 1024,
    }
