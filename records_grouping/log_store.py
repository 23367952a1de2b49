"""Bulk reads of the raw booking logs.

The booking system appends every record change and every webhook delivery to
two append-only logs. Each log is exported as a JSON-lines file, one raw entry
per line, oldest first. Only the most recent entries are read; the grouping
step tolerates duplicates, so overlap between the two logs is harmless.

Lines are returned verbatim. Decoding them is the normalizer's job, so a
corrupt line never fails the read.
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Any, Dict, List, Optional

from .enums import LogSource

LOG = logging.getLogger(__name__)

DEFAULT_LIMITS = {
    LogSource.RECORDS: 10000,
    LogSource.WEBHOOK: 1000,
}

_CONFIG_KEYS = {
    LogSource.RECORDS: "records_log",
    LogSource.WEBHOOK: "webhook_log",
}


def read_log(log_path: Path, limit: int) -> List[str]:
    """Read the ``limit`` most recent entries of one log.

    Parameters
    ----------
    log_path : Path
        JSON-lines file, oldest entry first.
    limit : int
        Maximum number of entries to return.

    Returns
    -------
    List[str]
        Raw non-blank lines in file order.

    Raises
    ------
    FileNotFoundError
        If the log file does not exist.
    ValueError
        If ``limit`` is not positive.
    """
    log_path = Path(log_path)
    if not log_path.exists():
        raise FileNotFoundError(f"Log file not found: {log_path}")
    if limit <= 0:
        raise ValueError(f"Log read limit must be positive, got {limit}")

    with log_path.open("r", encoding="utf-8") as f:
        recent = deque((line.rstrip("\n") for line in f if line.strip()), maxlen=limit)

    LOG.info("Read %d entries from %s", len(recent), log_path)
    return list(recent)


def log_limit(config: Optional[Dict[str, Any]], source: LogSource) -> int:
    """Configured read limit of one log, falling back to the default."""
    logs_config = (config or {}).get("logs", {}) or {}
    section = logs_config.get(_CONFIG_KEYS[source], {}) or {}
    return section.get("limit", DEFAULT_LIMITS[source])


def read_raw_items(
    records_path: Path,
    webhook_path: Optional[Path] = None,
    config: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """Merge the records log and the webhook log into one raw entry list.

    Parameters
    ----------
    records_path : Path
        Records log export.
    webhook_path : Path, optional
        Webhook log export; skipped when not given.
    config : Dict[str, Any], optional
        Loaded configuration providing ``logs.*.limit``.

    Returns
    -------
    List[str]
        Records entries followed by webhook entries.

    Raises
    ------
    FileNotFoundError
        If a given log file does not exist.
    """
    items = read_log(records_path, log_limit(config, LogSource.RECORDS))
    if webhook_path is not None:
        items.extend(read_log(webhook_path, log_limit(config, LogSource.WEBHOOK)))
    return items
