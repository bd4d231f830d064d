"""Command-line interface for running resonance reconstruction on event inputs."""

from __future__ import annotations

import argparse
import dataclasses
import importlib.util
import logging
from pathlib import Path
from typing import Any

from .combiner import AnalysisConfig, ResonanceCombiner
from .io import load_config_json, load_events_json, write_records_table
from .sink import Record, RecordSink

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="resocomb",
        description="Reconstruct pair and triplet resonance candidates with optional event mixing.",
    )
    parser.add_argument("--events", required=True, help="Input JSON with key 'events'.")
    parser.add_argument(
        "--config",
        default=None,
        help="Analysis configuration JSON (track selection, PID, cuts, mixing).",
    )
    parser.add_argument("--mix", action="store_true", help="Also run the mixed-event pass.")
    parser.add_argument(
        "--mc",
        action="store_true",
        help="Inputs carry generator truth: fill truth-tagged and generated spectra.",
    )
    parser.add_argument("--mass-window", type=float, default=None, help="Override resonance mass half-width.")
    parser.add_argument("--min-rapidity", type=float, default=None, help="Override minimum triplet rapidity.")
    parser.add_argument("--max-rapidity", type=float, default=None, help="Override maximum triplet rapidity.")
    parser.add_argument("--mixing-depth", type=int, default=None, help="Override number of events to mix.")
    parser.add_argument(
        "--out",
        required=True,
        help="Output table file for candidate records (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    parser.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(records, context) function.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load inputs, run the combiner, write table, optional custom hook."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    config = load_config_json(args.config) if args.config else AnalysisConfig()
    config = _apply_overrides(config, args)
    events = load_events_json(args.events)
    logger.info("Loaded %d events from %s", len(events), args.events)

    combiner = ResonanceCombiner(config)
    sink = RecordSink()
    truth = combiner.truth_matcher() if args.mc else None
    triplets = combiner.process_events(events, sink=sink, mix=args.mix, truth=truth)
    logger.info("Accepted %d triplet candidates, %d sink records", len(triplets), len(sink))
    write_records_table(args.out, sink.records)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            records=list(sink.records),
            context={
                "events_path": args.events,
                "config_path": args.config,
                "config": config,
                "mix": args.mix,
                "mc": args.mc,
                "output_path": args.out,
            },
        )
    return 0


def _apply_overrides(config: AnalysisConfig, args: argparse.Namespace) -> AnalysisConfig:
    """Replace scalar config values given on the command line."""
    cut_overrides = {
        name: value
        for name, value in (
            ("mass_window", args.mass_window),
            ("min_rapidity", args.min_rapidity),
            ("max_rapidity", args.max_rapidity),
        )
        if value is not None
    }
    if cut_overrides:
        config = dataclasses.replace(config, cuts=dataclasses.replace(config.cuts, **cut_overrides))
    if args.mixing_depth is not None:
        config = dataclasses.replace(
            config, mixing=dataclasses.replace(config.mixing, depth=args.mixing_depth)
        )
    return config


def run_custom_script(
    script_path: str, records: list[Record], context: dict[str, Any]
) -> None:
    """Execute user-supplied post-processing callback `process(records, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(records, context)."
        )
    process(records, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())
