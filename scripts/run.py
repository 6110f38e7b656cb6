# scripts/run.py
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import traceback
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from alchemist.dataloader.config_loader import ConfigLoader
from alchemist.dataloader.entity_loader import load_dataset
from alchemist.errors import AlchemistError, DataError
from alchemist.export.data_export import export_all, load_rules_config
from alchemist.schemas.models import PriorityWeights
from alchemist.validator.rules import parse_rules
from alchemist.validator.validator import Validator


def _setup_logging() -> None:
    """
    @brief
    Initializes global logging configuration.

    @details
    INFO level with a compact "[LEVEL] message" console format shared by all
    pipeline steps.
    """
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """
    @brief
    Parses command-line arguments for the validation pipeline.

    @details
    Entity files are optional individually; at least one must be given.
    `--rules` accepts either an exported rules configuration
    (`{rules, priority, exportedAt, version}`) or a bare JSON list of rules.
    """
    parser = argparse.ArgumentParser(
        prog="alchemist-run",
        description=(
            "Validate client/worker/task spreadsheets: load → validate → report → export"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/config.yaml",
        help="Path to config YAML (default: config/config.yaml)",
    )
    parser.add_argument("--clients", type=str, default=None, help="Clients CSV/XLSX file")
    parser.add_argument("--workers", type=str, default=None, help="Workers CSV/XLSX file")
    parser.add_argument("--tasks", type=str, default=None, help="Tasks CSV/XLSX file")
    parser.add_argument(
        "--rules",
        type=str,
        default=None,
        help="Rules JSON (exported rules configuration or a list of rules)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory for artifacts (default: output_dir from config)",
    )
    parser.add_argument(
        "--structural-only",
        action="store_true",
        help="Run the base pass only (no rule enforcement, no dataset-aware weight checks)",
    )
    return parser.parse_args(argv)


def _load_rules(path: Path | None) -> tuple[list[Any], PriorityWeights | None]:
    """
    @brief
    Reads rules (and optional weights) from a JSON file.

    @returns
        (rules, weights); weights is None for a bare rule list.

    @raises
        DataError
            If the file is unreadable or has neither accepted shape.
    """
    if path is None:
        return [], None

    # (1) Bare list of rule payloads; the engine reports bad entries as issues
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise DataError(
            message=f"Unable to read rules file: {e}",
            source="scripts.run._load_rules",
            suggested_action="Pass a JSON file exported by the rules builder.",
        ) from e
    if isinstance(data, list):
        return data, None

    # (2) Exported configuration
    config = load_rules_config(path)
    return list(config.rules), config.priority


def _exportable_rules(rules: Sequence[Any]) -> list[Any]:
    """Rules that can be exported; unparseable entries are reported as issues instead."""
    parsed, _ = parse_rules(rules)
    return parsed


def run_pipeline(
    config_path: Path | None,
    clients: Path | None,
    workers: Path | None,
    tasks: Path | None,
    rules_path: Path | None = None,
    output_dir: Path | None = None,
    structural_only: bool = False,
) -> dict[str, Any]:
    """
    @brief
    Executes the validation pipeline.

    @details
    Performs sequential steps:
    (1) Load configuration, entity files and rules.
    (2) Run one validation pass (enforcement unless `structural_only`).
    (3) Write the validation report.
    (4) Export cleaned entity tables, workbook and rules configuration.

    @returns
        Dictionary with the validity flag, issue counts and artifact paths.

    @raises
        AlchemistError
            On configuration, input or export failures.
    """
    # (1) Inputs
    t0 = time.perf_counter()
    cfg = ConfigLoader().load_or_default(config_path)
    out_dir = output_dir or Path(cfg.output_dir)

    if clients is None and workers is None and tasks is None:
        raise DataError(
            message="No input files given.",
            source="scripts.run",
            suggested_action="Pass at least one of --clients, --workers, --tasks.",
        )
    dataset = load_dataset(clients, workers, tasks)
    rules, weights = _load_rules(rules_path)
    weights = weights or PriorityWeights()

    # (2) Validation pass
    logging.info("Validating %s…", ", ".join(f"{n} {e}" for e, n in dataset.counts().items()))
    validator = Validator(dataset, rules, weights, cfg, enforce=not structural_only)
    validator.run_all_checks()
    result = validator.build_result()
    logging.info(
        "Validation finished: %d error(s), %d warning(s)",
        len(result.errors),
        len(result.warnings),
    )

    # (3) Report
    report_path: Path | None = None
    if cfg.validation.write_report:
        report_path = validator.save_report(validator.build_report(result), out_dir=out_dir)

    # (4) Export of the normalized data
    if not result.is_valid:
        logging.warning("Exporting data that still has validation errors.")
    artifacts: dict[str, Path | None] = {"validation_report": report_path}
    artifacts.update(export_all(dataset, _exportable_rules(rules), weights, out_dir, cfg.export))

    logging.info("Pipeline finished in %.2f s", time.perf_counter() - t0)
    return {
        "valid": result.is_valid,
        "errors": len(result.errors),
        "warnings": len(result.warnings),
        "artifacts": artifacts,
    }


def main(argv: Sequence[str] | None = None) -> int:
    """
    @brief
    CLI entry point.

    @details
    Exit codes:
      0 – dataset valid
      1 – dataset invalid, or controlled failure (config/data/rules)
      2 – unexpected crash
    """
    _setup_logging()
    args = _parse_args(argv)

    def _path(value: str | None) -> Path | None:
        return Path(value) if value else None

    config_path = _path(args.config)
    if config_path is not None and not config_path.exists() and args.config == "config/config.yaml":
        config_path = None  # default location is optional

    try:
        result = run_pipeline(
            config_path,
            _path(args.clients),
            _path(args.workers),
            _path(args.tasks),
            rules_path=_path(args.rules),
            output_dir=_path(args.output),
            structural_only=args.structural_only,
        )
        written = [p.name for p in result["artifacts"].values() if p is not None]
        logging.info("Artifacts: %s", ", ".join(written))
        return 0 if result["valid"] else 1

    except AlchemistError as e:
        logging.error(str(e))
        return 1
    except Exception:
        logging.error("Unexpected error occurred:")
        traceback.print_exc()
        return 2


if __name__ == "__main__":
    sys.exit(main())
