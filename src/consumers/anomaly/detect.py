"""
CLI for the real-time anomaly detection consumer.

Usage:
    python -m src.consumers.anomaly.detect [options]
"""

import argparse
import logging
import os
import sys

import structlog

from src.anomaly.models import DetectorWeights, EngineConfig
from src.core.logger import setup_logging

from .consumer import AnomalyConsumer
from .models import ConsumerConfig

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Real-time anomaly detection consumer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Basic usage
        python -m src.consumers.anomaly.detect

        # Custom configuration
        python -m src.consumers.anomaly.detect \\
            --kafka-servers kafka:9092 \\
            --voting-threshold 0.6 \\
            --history-file last_week.csv

        # Test run for 5 minutes without publishing alerts
        python -m src.consumers.anomaly.detect --duration 300 --no-alerts
        """,
    )

    # Kafka settings
    parser.add_argument(
        "--kafka-servers",
        default=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
        help="Kafka bootstrap servers (default: localhost:9092)",
    )
    parser.add_argument(
        "--topic",
        default=os.getenv("KAFKA_TOPIC", "datacenter-metrics"),
        help="Kafka topic (default: datacenter-metrics)",
    )
    parser.add_argument(
        "--alert-topic",
        default=os.getenv("ALERT_TOPIC", "datacenter-anomalies"),
        help="Topic anomalous verdicts are published to (default: datacenter-anomalies)",
    )
    parser.add_argument(
        "--no-alerts",
        action="store_true",
        help="Do not publish verdicts, only log them",
    )
    parser.add_argument(
        "--group-id",
        default="anomaly-engine-consumer-group",
        help="Kafka consumer group ID",
    )
    parser.add_argument(
        "--offset-reset",
        choices=["earliest", "latest"],
        default="latest",
        help="Auto offset reset (default: latest - only new messages)",
    )

    # Engine configuration
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
        "--retrain-every",
        type=int,
        default=50,
        help="Joint samples between isolation forest refits (default: 50)",
    )
    parser.add_argument(
        "--disable",
        nargs="+",
        choices=["statistical", "isolation_forest", "adaptive"],
        default=[],
        help="Strategies to disable",
    )
    parser.add_argument(
        "--history-file",
        help="CSV or JSON-lines metrics export used to warm up the models",
    )

    # Runtime settings
    parser.add_argument(
        "--duration",
        type=int,
        help="Run for N seconds then stop (default: infinite)",
    )
    parser.add_argument(
        "--commit-interval",
        type=float,
        default=10.0,
        help="Max seconds between offset commits (default: 10.0)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def build_config(args) -> ConsumerConfig:
    """Build configuration from arguments"""
    statistical, isolation_forest, adaptive = args.weights
    engine = EngineConfig(
        enable_statistical="statistical" not in args.disable,
        enable_isolation_forest="isolation_forest" not in args.disable,
        enable_adaptive="adaptive" not in args.disable,
        weights=DetectorWeights(statistical=statistical, isolation_forest=isolation_forest, adaptive=adaptive),
        voting_threshold=args.voting_threshold,
        stream_buffer_size=args.buffer_size,
        auto_train_every=args.retrain_every,
        emit_events=not args.no_alerts,
    )
    return ConsumerConfig(
        kafka_bootstrap_servers=args.kafka_servers,
        kafka_topic=args.topic,
        kafka_group_id=args.group_id,
        kafka_auto_offset_reset=args.offset_reset,
        alert_topic=None if args.no_alerts else args.alert_topic,
        commit_interval_seconds=args.commit_interval,
        engine=engine,
        history_file=args.history_file,
    )


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    # Setup logging
    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level)

    logger.info("Starting anomaly detection consumer")

    try:
        config = build_config(args)

        consumer = AnomalyConsumer(config)
        consumer.run(duration_seconds=args.duration)

        logger.info("Consumer completed successfully")
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Consumer failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
