"""Tests for settings validation and CORS configuration."""

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from main import app
from tests.fixtures.analysis_fixtures import make_settings


class TestSettings:
    """Settings parse engine tuning and CORS values from the environment."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("https://a.example,https://b.example", ["https://a.example", "https://b.example"]),
            ('["https://a.example"]', ["https://a.example"]),
            ("", []),
        ],
    )
    def test_cors_origins_formats(self, raw, expected):
        assert make_settings(CORS_ORIGINS=raw).CORS_ORIGINS == expected

    def test_wildcard_rejected_with_credentials(self):
        with pytest.raises(ValidationError):
            make_settings(CORS_ORIGINS="*", ALLOW_CREDENTIALS=True)

    def test_wildcard_allowed_without_credentials(self):
        settings = make_settings(CORS_ORIGINS="*", ALLOW_CREDENTIALS=False)
        assert settings.CORS_ORIGINS == ["*"]

    @pytest.mark.parametrize("cap", [0, 100, 120])
    def test_progress_cap_must_stay_below_completion(self, cap):
        with pytest.raises(ValidationError):
            make_settings(PROGRESS_CAP=cap)

    def test_default_model_follows_provider(self):
        assert make_settings(LLM_PROVIDER="gemini").default_analysis_model == "gemini-1.5-flash"
        assert make_settings(ANALYSIS_MODEL="gpt-4.1").default_analysis_model == "gpt-4.1"


class TestCORSConfiguration:
    """Test CORS configuration adheres to security requirements."""

    def test_cors_preflight_request(self):
        """Test CORS preflight request is handled correctly."""
        client = TestClient(app)
        response = client.options(
            "/api/v1/analysis/stream",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Authorization, Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert response.headers["Access-Control-Allow-Credentials"] == "true"

    def test_cors_request_from_disallowed_origin(self):
        """Test CORS omits headers for disallowed origins."""
        client = TestClient(app)
        response = client.get(
            "/api/v1/health",
            headers={"Origin": "http://malicious-site.com"},
        )

        assert response.status_code == 200
        assert response.headers.get("Access-Control-Allow-Origin") != "http://malicious-site.com"
