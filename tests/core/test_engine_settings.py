"""
Tests for settings, timezone helpers and exceptions.
"""
from datetime import datetime, timedelta, timezone

from app.core.config import Settings
from app.core.exceptions import EmptyAudienceError, NotFoundError, ValidationError
from app.core.timezone import TZ_UTC, parse_datetime, to_utc


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.VENDOR_SUCCESS_RATE == 0.9
        assert settings.DISPATCH_MAX_CONCURRENCY == 50
        assert settings.CAMPAIGN_LOGS_LIMIT == 100
        assert settings.RECEIPT_STREAM == "vendor:receipts"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DISPATCH_MAX_CONCURRENCY", "8")
        monkeypatch.setenv("STORAGE_BACKEND", "memory")

        settings = Settings(_env_file=None)

        assert settings.DISPATCH_MAX_CONCURRENCY == 8
        assert settings.STORAGE_BACKEND == "memory"

    def test_cors_origins_list(self):
        settings = Settings(_env_file=None, CORS_ORIGINS="https://a.example, https://b.example")

        assert settings.cors_origins_list == ["https://a.example", "https://b.example"]


class TestTimezone:

    def test_naive_is_assumed_utc(self):
        assert to_utc(datetime(2025, 1, 1, 10)).tzinfo == TZ_UTC

    def test_offsets_are_converted(self):
        ist = timezone(timedelta(hours=5, minutes=30))

        assert to_utc(datetime(2025, 1, 1, 10, tzinfo=ist)).hour == 4

    def test_parse_trailing_z(self):
        assert parse_datetime("2025-06-01T12:00:00Z") == datetime(2025, 6, 1, 12, tzinfo=TZ_UTC)

    def test_parse_empty(self):
        assert parse_datetime("") is None
        assert parse_datetime(None) is None


class TestExceptions:

    def test_empty_audience_is_a_validation_error(self):
        exc = EmptyAudienceError("seg-1")

        assert isinstance(exc, ValidationError)
        assert exc.details == {"segment_id": "seg-1"}

    def test_not_found_str(self):
        assert str(NotFoundError("Campaign", "c-1")) == "Campaign not found - {'id': 'c-1'}"
