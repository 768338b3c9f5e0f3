"""
Tests for the anomaly consumer CLI.
"""

from unittest.mock import patch

from src.consumers.anomaly.detect import build_config, main, parse_arguments


class TestBuildConfig:
    """Tests for argument parsing and config building."""

    def test_defaults(self):
        """Default arguments give the default engine."""
        config = build_config(parse_arguments([]))

        assert config.alert_topic == "datacenter-anomalies"
        assert config.engine.voting_threshold == 0.5
        assert config.engine.enable_statistical is True
        assert config.engine.weights.isolation_forest == 0.4

    def test_custom_engine(self):
        """Engine options map onto EngineConfig."""
        args = parse_arguments(
            [
                "--voting-threshold", "0.6",
                "--buffer-size", "200",
                "--weights", "0.5", "0.5", "0",
                "--disable", "adaptive",
                "--retrain-every", "100",
            ]
        )  # fmt: skip
        config = build_config(args)

        assert config.engine.voting_threshold == 0.6
        assert config.engine.stream_buffer_size == 200
        assert config.engine.weights.statistical == 0.5
        assert config.engine.enable_adaptive is False
        assert config.engine.auto_train_every == 100

    def test_no_alerts(self):
        """--no-alerts disables publishing and events."""
        config = build_config(parse_arguments(["--no-alerts"]))

        assert config.alert_topic is None
        assert config.engine.emit_events is False


class TestMain:
    """Tests for the entry point."""

    @patch("src.consumers.anomaly.detect.AnomalyConsumer")
    def test_success(self, mock_consumer_class):
        """Returns 0 after the consumer stops."""
        assert main(["--duration", "1"]) == 0
        mock_consumer_class.return_value.run.assert_called_once_with(duration_seconds=1)

    @patch("src.consumers.anomaly.detect.AnomalyConsumer")
    def test_failure(self, mock_consumer_class):
        """Returns 1 when the consumer raises."""
        mock_consumer_class.side_effect = RuntimeError("no brokers")

        assert main([]) == 1
