"""Records grouping orchestrator.

Runs the grouping pipeline end to end over exported booking logs: read the
records and webhook logs, normalize the raw entries, rebuild per-visit record
groups, write the grouped-records artifact and, for a given month, the
per-master statistics.

**Error Handling Philosophy:**

- **Noisy log data** never fails a run: malformed entries are dropped by the
  normalizer and only counted in the log file
- **Infrastructure Errors** (missing log files, invalid config, invalid month)
  fail fast with a clear message; no partial artifacts are written after the
  failing step

**Exit Codes:**
- 0: Pipeline completed successfully
- 1: Pipeline failed (infrastructure error)
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from . import log_store, masters_stats, normalize, report
from .config_loader import load_config
from .data_models import NormalizedEvent, RecordGroup
from .grouping import group_records_by_client_day
from .query import is_valid_month

SCRIPT_DIR = Path(__file__).resolve().parent
ROOT_DIR = SCRIPT_DIR.parent
DEFAULT_OUTPUT_DIR = ROOT_DIR / "output"
DEFAULT_CONFIG_DIR = ROOT_DIR / "config"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Group booking log events into per-visit records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s records.jsonl
  %(prog)s records.jsonl --webhook-log webhooks.jsonl --month 2026-02
        """,
    )

    parser.add_argument(
        "records_log",
        type=Path,
        help="Records log export (JSON lines, oldest first)",
    )
    parser.add_argument(
        "--webhook-log",
        type=Path,
        default=None,
        dest="webhook_log",
        help="Webhook log export (JSON lines, oldest first)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT_DIR,
        dest="output_dir",
        help=f"Output directory (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_DIR,
        dest="config_dir",
        help=f"Config directory (default: {DEFAULT_CONFIG_DIR})",
    )
    parser.add_argument(
        "--month",
        type=str,
        default=None,
        help="Reporting month (YYYY-MM) for per-master statistics",
    )

    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    """Validate command-line arguments and raise errors if invalid."""
    if not args.records_log.exists():
        raise FileNotFoundError(f"Records log not found: {args.records_log}")
    if args.webhook_log is not None and not args.webhook_log.exists():
        raise FileNotFoundError(f"Webhook log not found: {args.webhook_log}")
    if args.month is not None and not is_valid_month(args.month):
        raise ValueError(f"--month must be YYYY-MM, got {args.month!r}")


def configure_logging(output_dir: Path, run_id: str) -> Path:
    """Configure file logging for the pipeline run.

    Parameters
    ----------
    output_dir : Path
        Root output directory where logs subdirectory will be created.
    run_id : str
        Unique run identifier used in log filename.

    Returns
    -------
    Path
        Path to the created log file.
    """
    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"records_grouping_{run_id}.log"

    handler = logging.FileHandler(log_path, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
        existing.close()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(handler)

    return log_path


def print_header(records_log: Path) -> None:
    """Print the pipeline header."""
    print()
    print("🚀 Starting records grouping")
    print(f"🗂️  Records log: {records_log}")
    print()


def print_step(step_num: int, description: str) -> None:
    """Print a step header."""
    print()
    print(f"{'=' * 60}")
    print(f"Step {step_num}: {description}")
    print(f"{'=' * 60}")


def print_step_complete(step_num: int, description: str, duration: float) -> None:
    """Print step completion message."""
    print(f"✅ Step {step_num}: {description} complete in {duration:.1f} seconds.")


def run_step_1_read_logs(
    records_log: Path, webhook_log: Optional[Path], config: dict
) -> List[str]:
    """Step 1: Read the raw logs."""
    print_step(1, "Reading logs")
    raw_items = log_store.read_raw_items(records_log, webhook_log, config)
    print(f"📥 Raw entries read: {len(raw_items)}")
    return raw_items


def run_step_2_normalize(raw_items: List[str]) -> List[NormalizedEvent]:
    """Step 2: Normalize raw entries into events."""
    print_step(2, "Normalizing entries")
    events = normalize.normalize_log_items(raw_items)
    print(f"🧾 Events normalized: {len(events)}")
    return events


def run_step_3_group(events: List[NormalizedEvent]) -> Dict[int, List[RecordGroup]]:
    """Step 3: Build record groups per client and day."""
    print_step(3, "Grouping records")
    groups_by_client = group_records_by_client_day(events)
    total_groups = sum(len(groups) for groups in groups_by_client.values())
    print(f"👥 Clients: {len(groups_by_client)}, groups: {total_groups}")
    return groups_by_client


def run_step_4_write_artifact(
    output_dir: Path,
    run_id: str,
    groups_by_client: Dict[int, List[RecordGroup]],
    config: dict,
) -> Path:
    """Step 4: Write the grouped-records artifact."""
    print_step(4, "Writing grouped records")
    locale = (config.get("report") or {}).get("locale", report.DEFAULT_LOCALE)
    artifact_path = report.write_artifact(
        output_dir / "artifacts", run_id, groups_by_client, locale
    )
    print(f"📄 Grouped records artifact: {artifact_path}")
    return artifact_path


def run_step_5_masters_stats(
    output_dir: Path,
    run_id: str,
    month: str,
    groups_by_client: Dict[int, List[RecordGroup]],
    config: dict,
) -> Path:
    """Step 5: Compute per-master statistics for one month (optional)."""
    print_step(5, f"Computing masters statistics for {month}")
    roster = masters_stats.roster_from_config(config)
    threshold = (config.get("stats") or {}).get(
        "fuzzy_threshold", masters_stats.DEFAULT_FUZZY_THRESHOLD
    )
    df = masters_stats.compute_masters_stats(groups_by_client, month, roster, threshold)

    stats_dir = output_dir / "metadata"
    stats_dir.mkdir(parents=True, exist_ok=True)
    stats_path = stats_dir / f"masters_stats_{month}_{run_id}.csv"
    df.to_csv(stats_path, index=False, encoding="utf-8")
    print(df.to_string(index=False))
    print(f"📊 Masters statistics: {stats_path}")
    return stats_path


def print_summary(
    step_times: list[tuple[str, float]],
    total_duration: float,
    total_clients: int,
) -> None:
    """Print the pipeline summary."""
    print()
    print(f"{'=' * 60}")
    print("🎉 Records grouping completed successfully!")
    print(f"{'=' * 60}")
    print()
    print("🕒 Time Summary:")
    for step_name, duration in step_times:
        print(f"  - {step_name:<25} {duration:.1f}s")
    print(f"  - {'─' * 25} {'─' * 6}")
    print(f"  - {'Total Time':<25} {total_duration:.1f}s")
    print()
    print(f"👥 Clients grouped:        {total_clients}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run the records grouping orchestrator."""
    try:
        args = parse_args(argv)
        validate_args(args)
    except (ValueError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    output_dir = args.output_dir.resolve()
    config_dir = args.config_dir.resolve()
    run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")

    try:
        config = load_config(config_dir / "parameters.yaml")
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    log_path = configure_logging(output_dir, run_id)
    print_header(args.records_log)

    total_start = time.time()
    step_times = []

    try:
        step_start = time.time()
        raw_items = run_step_1_read_logs(args.records_log, args.webhook_log, config)
        step_duration = time.time() - step_start
        step_times.append(("Log Reading", step_duration))
        print_step_complete(1, "Log reading", step_duration)

        step_start = time.time()
        events = run_step_2_normalize(raw_items)
        step_duration = time.time() - step_start
        step_times.append(("Normalization", step_duration))
        print_step_complete(2, "Normalization", step_duration)

        step_start = time.time()
        groups_by_client = run_step_3_group(events)
        step_duration = time.time() - step_start
        step_times.append(("Grouping", step_duration))
        print_step_complete(3, "Grouping", step_duration)

        step_start = time.time()
        run_step_4_write_artifact(output_dir, run_id, groups_by_client, config)
        step_duration = time.time() - step_start
        step_times.append(("Artifact Writing", step_duration))
        print_step_complete(4, "Artifact writing", step_duration)

        if args.month:
            step_start = time.time()
            run_step_5_masters_stats(
                output_dir, run_id, args.month, groups_by_client, config
            )
            step_duration = time.time() - step_start
            step_times.append(("Masters Statistics", step_duration))
            print_step_complete(5, "Masters statistics", step_duration)
        else:
            print_step(5, "Computing masters statistics")
            print("Masters statistics skipped (no --month given).")

        total_duration = time.time() - total_start
        print_summary(step_times, total_duration, len(groups_by_client))
        print(f"Log written to {log_path}")

        return 0

    except Exception as exc:
        logging.getLogger(__name__).exception("Records grouping failed")
        print(f"\n❌ Pipeline failed: {exc}", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
