import logging

import pytest
from pydantic import ValidationError

from cas_core.config import get_settings, log_settings_summary


@pytest.mark.parametrize("key, secret, expected", [
    ("key", "secret", True),
    ("key", None, False),
    (None, "secret", False),
    ("", "", False),
])
def test_has_credentials_requires_both(key, secret, expected):
    settings = get_settings(FILEBASE_API_KEY=key, FILEBASE_SECRET_KEY=secret)
    assert settings.has_credentials is expected


def test_environment_is_read_once_per_settings_object(monkeypatch):
    monkeypatch.setenv("UPLOAD_TIMEOUT_SECONDS", "5")
    settings = get_settings()
    monkeypatch.setenv("UPLOAD_TIMEOUT_SECONDS", "99")
    assert settings.UPLOAD_TIMEOUT_SECONDS == 5.0


def test_overrides_win_over_environment(monkeypatch):
    monkeypatch.setenv("FILEBASE_BUCKET", "from-env")
    assert get_settings(FILEBASE_BUCKET="explicit").FILEBASE_BUCKET == "explicit"


def test_settings_are_frozen():
    settings = get_settings()
    with pytest.raises(ValidationError):
        settings.FILEBASE_API_KEY = "changed"


def test_half_configured_credentials_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="CAS_Core"):
        log_settings_summary(get_settings(FILEBASE_API_KEY="key", FILEBASE_SECRET_KEY=None))
    assert any("offline mode" in record.getMessage() for record in caplog.records)
