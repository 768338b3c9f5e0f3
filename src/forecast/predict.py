"""
CLI printing enhanced forecasts for one server from a metrics export.

Usage:
    python -m src.forecast.predict --input metrics.csv --server-id web-1 [options]
"""

import argparse
import json
import logging
import os
import sys

import structlog

from src.anomaly.models import METRICS, MetricSample
from src.anomaly.replay import load_metrics_frame
from src.core.logger import setup_logging

from .models import ForecastConfig
from .predictor import TrendForecaster

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Forecast metric trends and threshold breaches for a server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Forecast every metric of web-1
        python -m src.forecast.predict --input metrics.csv --server-id web-1

        # Longer regression window, JSON output
        python -m src.forecast.predict --input metrics.jsonl --server-id web-1 \\
            --window 24 --json
        """,
    )
    parser.add_argument("--input", required=True, help="CSV, JSON-lines or JSON metrics file")
    parser.add_argument("--server-id", required=True, help="Server to forecast")
    parser.add_argument(
        "--metrics",
        nargs="+",
        choices=[metric.value for metric in METRICS],
        default=[metric.value for metric in METRICS],
        help="Metrics to forecast (default: all)",
    )
    parser.add_argument(
        "--window",
        type=int,
        default=12,
        help="Number of most recent samples used for the regression (default: 12)",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)
    setup_logging(level=getattr(logging, args.log_level))

    try:
        frame = load_metrics_frame(args.input)
        if "timestamp" not in frame.columns:
            raise ValueError("Forecasting requires a timestamp column")

        rows = frame[frame["server_id"] == args.server_id].dropna(subset=["timestamp"])
        if rows.empty:
            raise ValueError(f"No samples for server {args.server_id}")

        metrics_data = {
            name: [MetricSample(ts.to_pydatetime(), float(v)) for ts, v in zip(rows["timestamp"], rows[name])]
            for name in args.metrics
        }
        forecaster = TrendForecaster(ForecastConfig(regression_window=args.window))
        results = forecaster.predict_enhanced_batch(metrics_data)

        if args.json:
            print(json.dumps({name: result.to_dict() for name, result in results.items()}, indent=2))
        else:
            for name, result in results.items():
                print(
                    f"{name:<8} {result.current_status.value:<8} {result.trend.value:<10} "
                    f"now={result.details.current_value:6.1f} next={result.predicted_value:6.1f} "
                    f"conf={result.confidence:.2f}  {result.breach.human_readable}"
                )
                if result.recovery.human_readable:
                    print(f"{'':<8} {result.recovery.human_readable}")

        logger.info("Forecast completed", server_id=args.server_id, metrics=len(results))
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Forecast failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
