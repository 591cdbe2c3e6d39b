"""Unit tests for the observability module."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

import pytest

from core.observability import (
    _is_observability_enabled,
    configure_observability,
    get_tracer,
)


class TestIsObservabilityEnabled:
    """Tests for _is_observability_enabled function."""

    @pytest.mark.parametrize(
        "env_value,expected",
        [
            ("true", True),
            ("TRUE", True),
            ("1", True),
            ("yes", True),
            ("on", True),
            ("false", False),
            ("0", False),
            ("off", False),
            ("", False),
            ("random", False),
        ],
    )
    def test_truthy_and_falsy_values(
        self, env_value: str, expected: bool, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", env_value)
        assert _is_observability_enabled() is expected

    def test_default_when_not_set(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ENABLE_OBSERVABILITY", raising=False)
        assert _is_observability_enabled() is False


class TestConfigureObservability:
    """Tests for configure_observability function."""

    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        configure_observability.cache_clear()
        yield
        configure_observability.cache_clear()

    def test_returns_false_when_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "false")
        assert configure_observability() is False

    def test_returns_false_without_connection_string(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.delenv("APPLICATIONINSIGHTS_CONNECTION_STRING", raising=False)

        assert configure_observability() is False
        assert "APPLICATIONINSIGHTS_CONNECTION_STRING not set" in caplog.text

    def test_configures_azure_monitor(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.setenv(
            "APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=test"
        )
        monkeypatch.delenv("OTEL_SERVICE_NAME", raising=False)
        azure_module = MagicMock()

        with patch.dict(sys.modules, {"azure.monitor.opentelemetry": azure_module}):
            assert configure_observability() is True

        azure_module.configure_azure_monitor.assert_called_once_with(
            connection_string="InstrumentationKey=test"
        )

    def test_configuration_failure_is_logged(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("ENABLE_OBSERVABILITY", "true")
        monkeypatch.setenv(
            "APPLICATIONINSIGHTS_CONNECTION_STRING", "InstrumentationKey=test"
        )
        azure_module = MagicMock()
        azure_module.configure_azure_monitor.side_effect = ValueError("bad string")

        with patch.dict(sys.modules, {"azure.monitor.opentelemetry": azure_module}):
            assert configure_observability() is False

        assert "Failed to configure Azure Monitor" in caplog.text


class TestGetTracer:
    def test_spans_work_without_sdk(self) -> None:
        tracer = get_tracer("tests")

        with tracer.start_as_current_span("analysis.test") as span:
            span.set_attribute("analysis.provider", "openai")

        span = tracer.start_span("analysis.stream")
        span.set_attribute("analysis.deltas", 3)
        span.end()
