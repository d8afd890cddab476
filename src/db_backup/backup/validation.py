"""Backup configuration validation and date-bound parsing.

Invalid configurations are rejected before any catalog query runs.

Usage:
    from db_backup.backup.validation import validate_backup_config

    report = validate_backup_config(config)
    if not report["valid"]:
        raise BackupConfigError("; ".join(report["errors"]))
"""

from datetime import date, datetime, time, timezone

from db_backup.backup.models import BackupConfig


class BackupConfigError(ValueError):
    """Raised when a backup configuration is invalid."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid backup configuration: " + "; ".join(errors))


def parse_date_bound(value: str, end_of_day: bool = False) -> datetime:
    """Parse an ISO-8601 date or datetime into an aware ``datetime``.

    A bare date (``2024-01-31``) becomes midnight, or the last microsecond
    of that day when ``end_of_day`` is set, so that an upper bound given as
    a date includes the whole day.  Naive datetimes are taken as UTC.

    Raises:
        ValueError: If ``value`` is not ISO-8601.

    Example:
        >>> parse_date_bound("2024-01-31", end_of_day=True).isoformat()
        '2024-01-31T23:59:59.999999+00:00'
    """
    text = value.strip()
    if len(text) == 10:
        day = date.fromisoformat(text)
        moment = datetime.combine(day, time.max if end_of_day else time.min)
    else:
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def resolve_date_bounds(
    config: BackupConfig,
) -> tuple[datetime | None, datetime | None]:
    """Return ``(date_from, date_to)`` as aware datetimes (or ``None``)."""
    date_from = parse_date_bound(config.date_from) if config.date_from else None
    date_to = (
        parse_date_bound(config.date_to, end_of_day=True) if config.date_to else None
    )
    return date_from, date_to


def validate_backup_config(config: BackupConfig, now: datetime | None = None) -> dict:
    """Check a backup configuration.

    Rules:
    - At least one option must be enabled.
    - ``selective`` scope must name at least one table.
    - Dates must be ISO-8601, ``date_from`` must not be after ``date_to``,
      and neither may lie in the future.

    Args:
        config: Configuration to check.
        now: Reference time for the "future" check (default: current UTC).

    Returns:
        Dict with ``valid`` (bool) and ``errors`` (list[str]).

    Example:
        report = validate_backup_config(config)
        if report["errors"]:
            raise BackupConfigError(report["errors"])
    """
    errors: list[str] = []
    now = now or datetime.now(timezone.utc)

    if not config.options.any_enabled:
        errors.append("At least one backup option must be enabled")

    if config.scope == "selective" and not config.tables:
        errors.append("Selective backup requires at least one table")

    date_from: datetime | None = None
    date_to: datetime | None = None
    for label, raw in (("date_from", config.date_from), ("date_to", config.date_to)):
        if not raw:
            continue
        try:
            parsed = parse_date_bound(raw)
        except ValueError:
            errors.append(f"{label} is not an ISO-8601 date: {raw!r}")
            continue
        if parsed > now:
            errors.append(f"{label} cannot be in the future")
        if label == "date_from":
            date_from = parsed
        else:
            date_to = parsed

    if date_from is not None and date_to is not None and date_from > date_to:
        errors.append("date_from cannot be after date_to")

    return {"valid": not errors, "errors": errors}
