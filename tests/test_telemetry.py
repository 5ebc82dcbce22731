"""
Tests for engine metrics.
"""
from unittest.mock import MagicMock, patch

from attempt_engine.telemetry import METER_NAME, EngineMetrics


class TestEngineMetrics:
    """Tests for EngineMetrics recording."""

    @patch("attempt_engine.telemetry.otel_metrics.get_meter")
    def test_counters_created_once_and_labelled(self, mock_get_meter):
        meter = MagicMock()
        mock_get_meter.return_value = meter
        engine_metrics = EngineMetrics(enabled=True)

        engine_metrics.record_submission("timeout", "success")
        engine_metrics.record_submission("manual", "failure")

        mock_get_meter.assert_called_once_with(METER_NAME)
        meter.create_counter.assert_called_once()
        assert meter.create_counter.call_args[0][0] == "attempt_engine.submissions"
        counter = meter.create_counter.return_value
        counter.add.assert_any_call(1, {"trigger": "timeout", "outcome": "success"})
        counter.add.assert_any_call(1, {"trigger": "manual", "outcome": "failure"})

    @patch("attempt_engine.telemetry.otel_metrics.get_meter")
    def test_disabled_records_nothing(self, mock_get_meter):
        engine_metrics = EngineMetrics(enabled=False)

        engine_metrics.record_answer_save("success")
        engine_metrics.record_clock_expired()

        mock_get_meter.assert_not_called()

    @patch("attempt_engine.telemetry.otel_metrics.get_meter")
    def test_recording_never_raises(self, mock_get_meter):
        mock_get_meter.side_effect = RuntimeError("no meter provider")
        engine_metrics = EngineMetrics(enabled=True)

        engine_metrics.record_answer_save("failure")

    def test_real_api_without_sdk_is_noop(self):
        """Test that the bare OpenTelemetry API accepts recordings."""
        engine_metrics = EngineMetrics(enabled=True)

        engine_metrics.record_clock_expired()
        engine_metrics.record_answer_save("superseded")

    def test_enabled_defaults_to_settings(self):
        with patch("attempt_engine.telemetry.settings") as mock_settings:
            mock_settings.TELEMETRY_ENABLED = False

            assert EngineMetrics().enabled is False
