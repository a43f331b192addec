"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than at runtime when
a cashier tries to create the first booking of the day.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    async def main():
        try:
            await validate_startup_config()
        except StartupValidationError as e:
            logger.critical(f"Startup blocked: {e}")
            sys.exit(1)
"""

import logging
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.config import get_settings

logger = logging.getLogger(__name__)

PLACEHOLDER_SERVICE_ACCOUNT = "/path/to/service-account-key.json"


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


def _check_credentials_file(path_value: str, label: str) -> str | None:
    """Return an error message if the credentials file is unusable, else None."""
    if not path_value or path_value == PLACEHOLDER_SERVICE_ACCOUNT:
        return f"{label} is not configured - set path to your service account key file"

    path = Path(path_value)
    if not path.exists():
        return f"{label} credentials file not found: {path}"
    if not path.is_file():
        return f"{label} credentials path is not a file: {path}"

    try:
        content = path.read_text()
    except PermissionError:
        return f"{label} credentials file not readable (permission denied): {path}"

    if len(content) < 100:  # Valid JSON key file is typically >1KB
        return f"{label} credentials file appears empty or invalid: {path}"

    return None


async def validate_startup_config(require_google_calendar: bool = True) -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Args:
        require_google_calendar: If True, Google Calendar credentials are CRITICAL.
                                 If False, they're IMPORTANT (warn but continue).
                                 Bookings degrade to calendar-less records when
                                 the calendar is unavailable, so the API runs
                                 with False.

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    settings = get_settings()
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. Business time zone must be a valid IANA name
    try:
        ZoneInfo(settings.TIMEZONE)
        results["timezone"] = True
        logger.info(f"  [OK] Business time zone: {settings.TIMEZONE}")
    except (ZoneInfoNotFoundError, ValueError):
        critical_failures.append(f"TIMEZONE is not a valid IANA time zone: {settings.TIMEZONE}")
        results["timezone"] = False

    # 2. Google Calendar credentials file exists and readable
    gc_error = _check_credentials_file(settings.GOOGLE_SERVICE_ACCOUNT_JSON, "Google Calendar")
    results["google_calendar_file"] = gc_error is None
    if gc_error:
        if require_google_calendar:
            critical_failures.append(gc_error)
        else:
            logger.warning(f"  [WARN] {gc_error} (bookings will be stored without calendar events)")
    else:
        logger.info(f"  [OK] Google Calendar credentials: {settings.GOOGLE_SERVICE_ACCOUNT_JSON}")

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    # 3. Firebase project
    if not settings.FIREBASE_PROJECT_ID:
        logger.warning(
            "FIREBASE_PROJECT_ID not set - relying on application default credentials project"
        )
        results["firebase_project"] = False
    else:
        results["firebase_project"] = True

    # 4. Explicit Firebase credentials (optional, ADC otherwise)
    if settings.FIREBASE_CREDENTIALS_JSON:
        fb_error = _check_credentials_file(settings.FIREBASE_CREDENTIALS_JSON, "Firebase")
        results["firebase_credentials_file"] = fb_error is None
        if fb_error:
            logger.warning(f"  [WARN] {fb_error}")

    # 5. Fallback calendar IDs are derived from the service account e-mail
    if not settings.GOOGLE_CLIENT_EMAIL:
        logger.info(
            "  [INFO] GOOGLE_CLIENT_EMAIL not set - fallback calendar IDs use 'default'"
        )
        results["google_client_email"] = False
    else:
        results["google_client_email"] = True

    # =========================================================================
    # Summary and result
    # =========================================================================

    passed = sum(1 for v in results.values() if v)
    total = len(results)
    logger.info(f"Startup validation: {passed}/{total} checks passed")

    if critical_failures:
        logger.critical("=" * 60)
        logger.critical("STARTUP BLOCKED - Critical configuration errors:")
        for i, failure in enumerate(critical_failures, 1):
            logger.critical(f"  {i}. {failure}")
        logger.critical("=" * 60)
        raise StartupValidationError(
            f"Critical startup validation failed ({len(critical_failures)} errors): "
            f"{'; '.join(critical_failures)}"
        )

    return results
