"""Shared pytest fixtures for unit, integration, and e2e tests.

This module provides:
- Temporary directory fixtures for file I/O testing
- Configuration fixtures for parameter testing
- A master roster and sample log entries for statistics tests
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List

import pytest
import yaml

from records_grouping import data_models


@pytest.fixture
def tmp_test_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after each test.

    Real-world significance:
    - Isolates file I/O tests from each other
    - Prevents test artifacts from polluting the file system

    Yields
    ------
    Path
        Absolute path to temporary directory (automatically deleted after test)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def default_config() -> Dict[str, Any]:
    """Provide a minimal valid configuration.

    Real-world significance:
    - Mirrors config/parameters.yaml with a small roster
    - Tests can modify a copy without touching the real file

    Returns
    -------
    Dict[str, Any]
        Configuration dictionary accepted by validate_config
    """
    return {
        "logs": {
            "records_log": {"limit": 10000},
            "webhook_log": {"limit": 1000},
        },
        "report": {"locale": "uk"},
        "stats": {"fuzzy_threshold": 80},
        "masters": [
            {"id": "olena", "name": "Олена Коваль", "role": "master", "staff_id": 101},
            {"id": "maria", "name": "Марія Шевченко", "role": "master", "staff_id": 102},
            {"id": "iryna", "name": "Ірина", "role": "admin"},
        ],
    }


@pytest.fixture
def config_file(tmp_test_dir: Path, default_config: Dict[str, Any]) -> Path:
    """Write the default configuration to ``<tmp>/config/parameters.yaml``.

    Real-world significance:
    - The orchestrator reads parameters.yaml from a config directory
    """
    config_dir = tmp_test_dir / "config"
    config_dir.mkdir(exist_ok=True)
    config_path = config_dir / "parameters.yaml"
    with config_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(default_config, f, allow_unicode=True)
    return config_path


@pytest.fixture
def roster() -> List[data_models.MasterProfile]:
    """Provide the master roster matching default_config."""
    return [
        data_models.MasterProfile(master_id="olena", name="Олена Коваль", staff_id=101),
        data_models.MasterProfile(master_id="maria", name="Марія Шевченко", staff_id=102),
        data_models.MasterProfile(master_id="iryna", name="Ірина", role="admin"),
    ]


@pytest.fixture
def run_id() -> str:
    """Provide a fixed run identifier for artifact names."""
    return "test_run_20260210T120000"
