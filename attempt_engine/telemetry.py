"""
Engine metrics through the OpenTelemetry metrics API.

The API is a no-op until the host application installs an SDK meter
provider, so the engine never configures exporters itself.

Usage:
    from attempt_engine.telemetry import metrics

    metrics.record_answer_save("failure")
    metrics.record_submission("timeout", "success")
"""
import logging
from typing import Any, Dict, Optional

from opentelemetry import metrics as otel_metrics

from attempt_engine.config import settings

logger = logging.getLogger(__name__)

METER_NAME = "attempt_engine"


class EngineMetrics:
    """
    Counters for answer persistence, submission and deadline expiry.

    Instruments are created lazily on first use. Recording never raises.
    """

    def __init__(self, enabled: Optional[bool] = None) -> None:
        self._enabled = enabled
        self._counters: Dict[str, Any] = {}

    @property
    def enabled(self) -> bool:
        if self._enabled is not None:
            return self._enabled
        return settings.TELEMETRY_ENABLED

    def _counter(self, name: str, description: str) -> Any:
        counter = self._counters.get(name)
        if counter is None:
            meter = otel_metrics.get_meter(METER_NAME)
            counter = meter.create_counter(name, unit="1", description=description)
            self._counters[name] = counter
        return counter

    def _add(self, name: str, description: str, labels: Dict[str, str]) -> None:
        if not self.enabled:
            return
        try:
            self._counter(name, description).add(1, labels)
        except Exception as e:
            logger.debug(f"Failed to record metric {name}: {e}")

    def record_answer_save(self, outcome: str) -> None:
        """Record an answer save outcome (success, failure, superseded)."""
        self._add(
            "attempt_engine.answer_saves",
            "Answer upserts sent to the attempt service",
            {"outcome": outcome},
        )

    def record_submission(self, trigger: str, outcome: str) -> None:
        """Record a submission outcome for a manual or timeout trigger."""
        self._add(
            "attempt_engine.submissions",
            "Attempt submissions by trigger and outcome",
            {"trigger": trigger, "outcome": outcome},
        )

    def record_clock_expired(self) -> None:
        self._add(
            "attempt_engine.clock_expirations",
            "Deadline clocks that reached zero",
            {},
        )


# Global metrics instance
metrics = EngineMetrics()
