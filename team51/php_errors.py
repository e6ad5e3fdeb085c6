"""
PHP error log retrieval and analysis.

Logs are read over SSH or, when the site logs to the default location, from
the Pressable API. Over SSH the location comes from the site's PHP
configuration: ``wp-content/debug.log`` with WP_DEBUG on, ``/tmp/php-errors``
otherwise, or wherever an error-monitoring plugin has moved it.
"""

import hashlib
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

from team51.connections import PressableConnection
from team51.pyd_models.misc_models import PHPErrorSummary
from team51.pyd_models.pressable_models import PressablePHPLogEntry

logger = logging.getLogger(__name__)

DEFAULT_ERROR_LOG_PATH = "/tmp/php-errors"
SEVERITIES = ("User", "Warning", "Deprecated", "Fatal error")
MAX_ERROR_AGE = timedelta(days=7)
TAIL_LINES = 100000

FILE_AND_LINE_PATTERN = re.compile(r".* in (.+)(?: on line |:)(\d+)")
TIMESTAMP_FORMATS = ("%d-%b-%Y %H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")


class PHPError(BaseModel):
    message: str
    severity: str
    file: str = ""
    line: int = 0
    timestamp: datetime


def find_error_log_path(connection: PressableConnection) -> str:
    """Ask PHP on the site where it logs errors, falling back to the default path."""
    # WP-CLI may print notices first, so the value is fenced with a marker.
    separator = f"team51{uuid.uuid4().hex[:13]}"
    status, output = connection.exec(f"wp eval 'echo \"{separator}\" . ini_get(\"error_log\");'")
    if status == 0 and separator in output:
        path = output.split(separator, 1)[1].strip()
        if path:
            return path

    logger.warning(f"⚠️  Failed to find the PHP error log location, using {DEFAULT_ERROR_LOG_PATH}")
    return DEFAULT_ERROR_LOG_PATH


def fetch_error_log(connection: PressableConnection, path: str, lines: int = TAIL_LINES) -> str:
    """
    Download the tail of the error log.

    Raises:
        RuntimeError: If the file can't be read
    """
    status, output = connection.exec(f"tail -n {lines} {path}")
    if status != 0:
        raise RuntimeError(f"Failed to download the PHP error log {path}: {output.strip()}")
    return output


def parse_zone(name: str) -> Optional[tzinfo]:
    if name.upper() in ("UTC", "GMT", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    Parse a log timestamp such as ``18-Oct-2026 10:00:00 America/New_York``.

    A trailing zone name is honoured and the result converted to UTC;
    timestamps without one, or with an unknown one, are taken as UTC.
    """
    value = value.strip()
    zone: Optional[tzinfo] = timezone.utc
    parts = value.rsplit(" ", 1)
    if len(parts) == 2 and not parts[1][:1].isdigit():
        value, zone = parts[0], parse_zone(parts[1])
        if zone is None:
            logger.debug(f"Unknown time zone {parts[1]} in PHP error timestamp, assuming UTC")
            zone = timezone.utc

    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=zone).astimezone(timezone.utc)
        except ValueError:
            continue
    return None


def parse_error_log(
    text: str,
    severity: Optional[str] = None,
    now: Optional[datetime] = None,
    max_age: Optional[timedelta] = MAX_ERROR_AGE,
) -> List[PHPError]:
    """
    Parse raw log text into errors, newest first.

    Only lines starting with ``[`` are entries; stack traces and other
    continuation lines are skipped, as are entries older than ``max_age``
    (a week by default, None keeps everything).
    """
    now = now or datetime.now(timezone.utc)
    errors = []

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line.startswith("["):
            continue

        stamp, _, message = line[1:].partition("]")
        timestamp = parse_timestamp(stamp)
        if timestamp is None:
            logger.debug(f"Unparseable PHP error timestamp: {stamp}")
            continue
        if max_age is not None and timestamp + max_age < now:
            continue

        message = message.strip()
        error_severity = message.split(":", 1)[0].replace("PHP", "").strip()
        if severity and error_severity != severity:
            continue

        # Some messages contain both "on line N" and ":N"; the last match wins.
        matches = list(FILE_AND_LINE_PATTERN.finditer(message))
        if matches:
            file, line_number = matches[-1].group(1), int(matches[-1].group(2))
        else:
            logger.debug(f"Failed to parse file and line from: {message}")
            file, line_number = "", 0

        errors.append(
            PHPError(message=message, severity=error_severity, file=file, line=line_number, timestamp=timestamp)
        )

    errors.reverse()
    return errors


def summarize_errors(errors: List[PHPError]) -> List[PHPErrorSummary]:
    """Count each distinct message, keep its latest timestamp, most recent first."""
    stats: Dict[str, PHPErrorSummary] = {}
    latest: Dict[str, datetime] = {}

    for error in errors:
        key = hashlib.md5(error.message.encode("utf-8")).hexdigest()
        if key in stats:
            stats[key].count += 1
            if error.timestamp > latest[key]:
                latest[key] = error.timestamp
                stats[key].timestamp = error.timestamp.isoformat()
        else:
            latest[key] = error.timestamp
            stats[key] = PHPErrorSummary(
                message=error.message,
                severity=error.severity,
                timestamp=error.timestamp.isoformat(),
            )

    return [stats[key] for key in sorted(stats, key=lambda key: latest[key], reverse=True)]


def errors_from_log_entries(entries: List[PressablePHPLogEntry]) -> List[PHPError]:
    """Turn Pressable API log entries into errors, newest first."""
    errors = []
    for entry in entries:
        timestamp = entry.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        errors.append(
            PHPError(
                message=entry.message.strip(),
                severity=entry.severity,
                file=entry.file or "",
                line=entry.line or 0,
                timestamp=timestamp,
            )
        )
    return sorted(errors, key=lambda error: error.timestamp, reverse=True)
