"""Configuration loading utilities for the records grouping pipeline.

Provides a centralized way to load and validate the parameters.yaml
configuration file used by the orchestrator and the reporting steps.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .enums import MasterRole

SCRIPT_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = SCRIPT_DIR.parent / "config" / "parameters.yaml"


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load and parse the parameters.yaml configuration file.

    Automatically validates the configuration after loading. Raises
    clear exceptions if validation fails, enabling fail-fast behavior
    for infrastructure errors.

    Parameters
    ----------
    config_path : Path, optional
        Path to the configuration file. If not provided, uses the default
        location (config/parameters.yaml in the project root).

    Returns
    -------
    Dict[str, Any]
        Parsed and validated YAML configuration as a nested dictionary.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    yaml.YAMLError
        If the configuration file is invalid YAML.
    ValueError
        If the configuration fails validation (see validate_config).
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    validate_config(config)
    return config


def _require_positive_int(value: Any, key: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")


def validate_config(config: Dict[str, Any]) -> None:
    """Validate the entire configuration for consistency and required values.

    Parameters
    ----------
    config : Dict[str, Any]
        Configuration dictionary (result of load_config).

    Raises
    ------
    ValueError
        If required configuration is missing or invalid.

    Notes
    -----
    **Validation checks:**

    - **Logs:** ``logs.records_log.limit`` and ``logs.webhook_log.limit``, when
      set, must be positive integers
    - **Report:** ``report.locale``, when set, must be a non-empty string
    - **Stats:** ``stats.fuzzy_threshold``, when set, must be an integer in 0..100
    - **Masters:** every roster entry needs a non-empty ``id`` and ``name``, a
      known ``role`` and, when present, an integer ``staff_id``; ids are unique

    The business timezone, the administrator keywords and the reconciliation
    tolerances are code constants and are not read from here.
    """
    if not isinstance(config, dict):
        raise ValueError(
            f"Configuration must be a mapping, got {type(config).__name__}"
        )

    # Validate log read limits
    logs_config = config.get("logs", {}) or {}
    for log_name in ("records_log", "webhook_log"):
        section = logs_config.get(log_name, {}) or {}
        if "limit" in section:
            _require_positive_int(section["limit"], f"logs.{log_name}.limit")

    # Validate report config
    report_config = config.get("report", {}) or {}
    locale = report_config.get("locale", "uk")
    if not isinstance(locale, str) or not locale.strip():
        raise ValueError(f"report.locale must be a non-empty string, got {locale!r}")

    # Validate stats config
    stats_config = config.get("stats", {}) or {}
    threshold = stats_config.get("fuzzy_threshold", 80)
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValueError(
            f"stats.fuzzy_threshold must be an integer, got {type(threshold).__name__}"
        )
    if not 0 <= threshold <= 100:
        raise ValueError(
            f"stats.fuzzy_threshold must be between 0 and 100, got {threshold}"
        )

    # Validate masters roster
    masters = config.get("masters", []) or []
    if not isinstance(masters, list):
        raise ValueError(f"masters must be a list, got {type(masters).__name__}")

    seen_ids = set()
    for index, entry in enumerate(masters):
        if not isinstance(entry, dict):
            raise ValueError(f"masters[{index}] must be a mapping")
        master_id = str(entry.get("id") or "").strip()
        name = str(entry.get("name") or "").strip()
        if not master_id or not name:
            raise ValueError(f"masters[{index}] requires non-empty id and name")
        if master_id in seen_ids:
            raise ValueError(f"Duplicate master id in masters: {master_id}")
        seen_ids.add(master_id)

        try:
            MasterRole.from_string(entry.get("role"))
        except ValueError as exc:
            raise ValueError(f"Invalid role for masters[{index}]: {exc}") from exc

        staff_id = entry.get("staff_id")
        if staff_id is not None:
            _require_positive_int(staff_id, f"masters[{index}].staff_id")
