"""
Threshold status, breach and recovery estimation.

All estimates extrapolate the fitted slope linearly from the current value
and are only reported when the crossing falls within the prediction horizon.
"""

from .models import (
    MAX_PREDICTION_HORIZON,
    BreachPrediction,
    HealthStatus,
    MetricThresholds,
    RecoveryPrediction,
)


def determine_status(value: float, thresholds: MetricThresholds) -> HealthStatus:
    if value >= thresholds.critical:
        return HealthStatus.CRITICAL
    if value >= thresholds.warning:
        return HealthStatus.WARNING
    return HealthStatus.ONLINE


def _crossing_time(target: float, current: float, slope: float, horizon: float) -> float | None:
    if slope == 0:
        return None
    seconds = (target - current) / slope
    if 0 < seconds <= horizon:
        return seconds
    return None


def predict_threshold_breach(
    current_value: float,
    slope: float,
    thresholds: MetricThresholds,
    status: HealthStatus,
    horizon: float = MAX_PREDICTION_HORIZON,
) -> BreachPrediction:
    """Estimate when the metric crosses its warning and critical levels

    Args:
        current_value: Latest observed value
        slope: Fitted slope in units per second
        thresholds: Levels of the metric
        status: Current status derived from the same thresholds
        horizon: Longest accepted estimate in seconds
    """
    if status is HealthStatus.CRITICAL:
        return BreachPrediction(
            will_breach_warning=True,
            time_to_warning=0.0,
            will_breach_critical=True,
            time_to_critical=0.0,
            human_readable="Currently in critical state",
        )

    in_warning = status is HealthStatus.WARNING

    if slope <= 0:
        return BreachPrediction(
            will_breach_warning=in_warning,
            time_to_warning=0.0 if in_warning else None,
            will_breach_critical=False,
            time_to_critical=None,
            human_readable=(
                "Currently in warning state, not worsening" if in_warning else "Expected to stay healthy"
            ),
        )

    time_to_warning = 0.0 if in_warning else _crossing_time(thresholds.warning, current_value, slope, horizon)
    time_to_critical = _crossing_time(thresholds.critical, current_value, slope, horizon)

    breach = BreachPrediction(
        will_breach_warning=time_to_warning is not None,
        time_to_warning=time_to_warning,
        will_breach_critical=time_to_critical is not None,
        time_to_critical=time_to_critical,
        human_readable="",
    )
    breach.human_readable = _breach_message(breach, in_warning, horizon)
    return breach


def predict_recovery(
    current_value: float,
    slope: float,
    thresholds: MetricThresholds,
    status: HealthStatus,
    horizon: float = MAX_PREDICTION_HORIZON,
) -> RecoveryPrediction:
    """Estimate when a degraded metric falls back below its recovery level"""
    if status is HealthStatus.ONLINE:
        return RecoveryPrediction(will_recover=True, time_to_recovery=0.0, human_readable=None)

    if slope >= 0:
        return RecoveryPrediction(
            will_recover=False,
            time_to_recovery=None,
            human_readable=f"In {status.value} state, no natural recovery expected",
        )

    seconds = _crossing_time(thresholds.recovery, current_value, slope, horizon)
    if seconds is None:
        return RecoveryPrediction(
            will_recover=False,
            time_to_recovery=None,
            human_readable=f"Recovery not expected within {format_duration(horizon)}",
        )
    return RecoveryPrediction(
        will_recover=True,
        time_to_recovery=seconds,
        human_readable=f"Expected back to normal in {format_duration(seconds)}",
    )


def _breach_message(breach: BreachPrediction, in_warning: bool, horizon: float) -> str:
    if in_warning:
        if breach.will_breach_critical:
            return f"Currently in warning state, critical expected in {format_duration(breach.time_to_critical)}"
        return "Currently in warning state, no escalation to critical expected"
    if breach.will_breach_critical:
        return f"Critical expected in {format_duration(breach.time_to_critical)}"
    if breach.will_breach_warning:
        return f"Warning expected in {format_duration(breach.time_to_warning)}"
    return f"No threshold breach expected within {format_duration(horizon)}"


def format_duration(seconds: float) -> str:
    """Render a duration as e.g. "2h 5m", "1d 3h" or "less than 1m" """
    hours, remainder = divmod(int(seconds), 3600)
    minutes = remainder // 60
    if hours >= 24:
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    if minutes:
        return f"{minutes}m"
    return "less than 1m"
