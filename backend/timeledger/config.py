# backend/timeledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///timeledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging: "text" for humans, "json" for log shippers
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")

    # Integrity guard defaults
    TIMELEDGER_DUPLICATE_COOLDOWN_MINUTES = _env_int("TIMELEDGER_DUPLICATE_COOLDOWN_MINUTES", 5)
    TIMELEDGER_MAX_PUNCHES_PER_DAY = _env_int("TIMELEDGER_MAX_PUNCHES_PER_DAY", 8)
    TIMELEDGER_CLOCK_SKEW_SECONDS = _env_int("TIMELEDGER_CLOCK_SKEW_SECONDS", 120)

    # Adjustment workflow defaults
    TIMELEDGER_MAX_ADJUSTMENT_DAYS = _env_int("TIMELEDGER_MAX_ADJUSTMENT_DAYS", 7)
    TIMELEDGER_MIN_DESCRIPTION_LENGTH = _env_int("TIMELEDGER_MIN_DESCRIPTION_LENGTH", 10)
    TIMELEDGER_REQUIRE_EVIDENCE = _env_bool("TIMELEDGER_REQUIRE_EVIDENCE", True)
    TIMELEDGER_COMPLIANCE_MODE = _env_bool("TIMELEDGER_COMPLIANCE_MODE", True)

    # Work schedule defaults (local wall-clock times, HH:MM)
    TIMELEDGER_TIMEZONE = os.environ.get("TIMELEDGER_TIMEZONE", "UTC")
    TIMELEDGER_EXPECTED_START = os.environ.get("TIMELEDGER_EXPECTED_START", "08:00")
    TIMELEDGER_EXPECTED_END = os.environ.get("TIMELEDGER_EXPECTED_END", "17:00")
    TIMELEDGER_TOLERANCE_MINUTES = _env_int("TIMELEDGER_TOLERANCE_MINUTES", 10)
    TIMELEDGER_NIGHT_START = os.environ.get("TIMELEDGER_NIGHT_START", "22:00")
    TIMELEDGER_NIGHT_END = os.environ.get("TIMELEDGER_NIGHT_END", "05:00")
    TIMELEDGER_STANDARD_DAILY_MINUTES = _env_int("TIMELEDGER_STANDARD_DAILY_MINUTES", 480)
    TIMELEDGER_EXPECTED_BREAK_MINUTES = _env_int("TIMELEDGER_EXPECTED_BREAK_MINUTES", 60)
    TIMELEDGER_MAX_DAILY_OVERTIME_MINUTES = _env_int("TIMELEDGER_MAX_DAILY_OVERTIME_MINUTES", 120)
    TIMELEDGER_MAX_WEEKLY_OVERTIME_MINUTES = _env_int("TIMELEDGER_MAX_WEEKLY_OVERTIME_MINUTES", 600)
    # Monday=0 ... Sunday=6
    TIMELEDGER_WORK_WEEKDAYS = os.environ.get("TIMELEDGER_WORK_WEEKDAYS", "0,1,2,3,4")
    TIMELEDGER_ABSENCE_COUNTS_AS_DEBIT = _env_bool("TIMELEDGER_ABSENCE_COUNTS_AS_DEBIT", False)

    # Compliance export
    TIMELEDGER_EXPORT_FORMAT_VERSION = os.environ.get("TIMELEDGER_EXPORT_FORMAT_VERSION", "003")
    TIMELEDGER_EXPORT_ENCODING = os.environ.get("TIMELEDGER_EXPORT_ENCODING", "iso-8859-1")
