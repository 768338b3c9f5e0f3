"""
Replay an exported metrics file through the anomaly engine.

Reads CSV, JSON-lines or JSON-array exports with one row per server sample
(server_id, cpu, memory, disk, network, optional server_name and timestamp)
and writes one JSON verdict per line.

Usage:
    python -m src.anomaly.replay --input metrics.csv [options]
"""

import argparse
import json
import logging
import os
import sys
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

import pandas as pd
import structlog

from src.core.logger import setup_logging

from .engine import UnifiedAnomalyEngine
from .models import METRICS, DetectorWeights, EngineConfig, Metric, MetricSample, MultiMetricSample, ServerMetricInput

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = ["server_id"] + [metric.value for metric in METRICS]


def load_metrics_frame(path: str | Path) -> pd.DataFrame:
    """Load a CSV, JSON-lines or JSON-array metrics export sorted by timestamp

    Raises:
        ValueError: On an unsupported extension or missing columns
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        frame = pd.read_csv(path)
    elif suffix in (".jsonl", ".ndjson"):
        frame = pd.read_json(path, lines=True)
    elif suffix == ".json":
        frame = pd.read_json(path, orient="records")
    else:
        raise ValueError(f"Unsupported metrics file format: {path.suffix or path.name}")

    missing = set(REQUIRED_COLUMNS) - set(frame.columns)
    if missing:
        raise ValueError(f"Metrics file missing required columns: {sorted(missing)}")

    frame["server_id"] = frame["server_id"].astype(str)
    if "timestamp" in frame.columns:
        frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
        frame = frame.sort_values("timestamp", kind="stable").reset_index(drop=True)

    logger.debug("Loaded metrics file", path=str(path), rows=len(frame), servers=frame["server_id"].nunique())
    return frame


def frame_to_inputs(frame: pd.DataFrame) -> list[ServerMetricInput]:
    inputs = []
    for row in frame.to_dict("records"):
        timestamp = row.get("timestamp")
        server_name = row.get("server_name")
        inputs.append(
            ServerMetricInput(
                server_id=row["server_id"],
                cpu=float(row["cpu"]),
                memory=float(row["memory"]),
                disk=float(row["disk"]),
                network=float(row["network"]),
                server_name=None if pd.isna(server_name) else str(server_name),
                timestamp=None if pd.isna(timestamp) else timestamp.to_pydatetime(),
            )
        )
    return inputs


def build_history(
    inputs: Iterable[ServerMetricInput],
) -> tuple[list[MultiMetricSample], dict[Metric, list[MetricSample]]]:
    """Split timestamped inputs into engine warm-up data

    Returns:
        (joint samples for the isolation forest, per-metric series for the adaptive baseline)
    """
    multi_metric = []
    per_metric: dict[Metric, list[MetricSample]] = defaultdict(list)
    for item in inputs:
        if item.timestamp is None:
            continue
        sample = MultiMetricSample(item.timestamp, item.cpu, item.memory, item.disk, item.network)
        if sample.is_finite():
            multi_metric.append(sample)
        for metric in METRICS:
            per_metric[metric].append(MetricSample(item.timestamp, item.value(metric)))
    return multi_metric, dict(per_metric)


def replay(
    engine: UnifiedAnomalyEngine,
    inputs: Iterable[ServerMetricInput],
    output: TextIO,
    only_anomalies: bool = False,
) -> dict[str, int]:
    """Process inputs in order and write verdicts as JSON lines"""
    summary = {"processed": 0, "anomalies": 0, "written": 0}
    for item in inputs:
        verdict = engine.process(item)
        summary["processed"] += 1
        if verdict.is_anomaly:
            summary["anomalies"] += 1
        if only_anomalies and not verdict.is_anomaly:
            continue
        output.write(json.dumps(verdict.to_dict()) + "\n")
        summary["written"] += 1
    return summary


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Replay a metrics export through the anomaly engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Replay and print every verdict
        python -m src.anomaly.replay --input metrics.csv

        # Warm up from last week, keep only anomalies
        python -m src.anomaly.replay --input today.jsonl --history-file last_week.csv \\
            --only-anomalies --output anomalies.jsonl
        """,
    )
    parser.add_argument("--input", required=True, help="CSV, JSON-lines or JSON metrics file")
    parser.add_argument("--history-file", help="Metrics file used to warm up the models")
    parser.add_argument("--output", default="-", help="Output JSON-lines file (default: stdout)")
    parser.add_argument("--only-anomalies", action="store_true", help="Only write anomalous verdicts")

    parser.add_argument(
        "--voting-threshold",
        type=float,
        default=float(os.getenv("VOTING_THRESHOLD", "0.5")),
        help="Weighted score above which a sample is anomalous (default: 0.5)",
    )
    parser.add_argument(
        "--buffer-size",
        type=int,
        default=int(os.getenv("STREAM_BUFFER_SIZE", "100")),
        help="Samples kept per server and metric (default: 100)",
    )
    parser.add_argument(
        "--weights",
        type=float,
        nargs=3,
        metavar=("STATISTICAL", "ISOLATION_FOREST", "ADAPTIVE"),
        default=[0.3, 0.4, 0.3],
        help="Voting weights (default: 0.3 0.4 0.3)",
    )
    parser.add_argument(
        "--disable",
        nargs="+",
        choices=["statistical", "isolation_forest", "adaptive"],
        default=[],
        help="Strategies to disable",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def build_config(args) -> EngineConfig:
    """Build engine configuration from arguments"""
    statistical, isolation_forest, adaptive = args.weights
    return EngineConfig(
        enable_statistical="statistical" not in args.disable,
        enable_isolation_forest="isolation_forest" not in args.disable,
        enable_adaptive="adaptive" not in args.disable,
        weights=DetectorWeights(statistical=statistical, isolation_forest=isolation_forest, adaptive=adaptive),
        voting_threshold=args.voting_threshold,
        stream_buffer_size=args.buffer_size,
        emit_events=False,
    )


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)
    setup_logging(level=getattr(logging, args.log_level))

    try:
        engine = UnifiedAnomalyEngine(build_config(args))

        if args.history_file:
            multi_metric, per_metric = build_history(frame_to_inputs(load_metrics_frame(args.history_file)))
            engine.initialize(multi_metric=multi_metric, per_metric=per_metric)

        inputs = frame_to_inputs(load_metrics_frame(args.input))
        if args.output == "-":
            summary = replay(engine, inputs, sys.stdout, args.only_anomalies)
        else:
            with open(args.output, "w", encoding="utf-8") as output:
                summary = replay(engine, inputs, output, args.only_anomalies)

        logger.info("Replay completed", **summary)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Replay failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
