"""Settings from the environment and per-request derivation config."""

import pytest
from pydantic import ValidationError

from kundali_core.config import DerivationConfig, Settings
from kundali_core.core.dasha import load_config
from kundali_core.core.errors import InvalidInputError


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("KUNDALI_DEFAULT_DASHA_DEPTH", raising=False)
    monkeypatch.delenv("KUNDALI_DEFAULT_LOCALE", raising=False)
    settings = Settings(_env_file=None)
    assert settings.default_locale == "en"
    assert settings.default_dasha_depth == 3


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("KUNDALI_DEFAULT_DASHA_DEPTH", "2")
    monkeypatch.setenv("KUNDALI_DEFAULT_LOCALE", "ne")
    settings = Settings(_env_file=None)
    assert settings.default_dasha_depth == 2
    assert settings.default_locale == "ne"


def test_settings_bounds(monkeypatch):
    monkeypatch.setenv("KUNDALI_DEFAULT_DASHA_DEPTH", "9")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_load_config_accepts_both_spellings():
    camel = load_config({"traditionHints": {"startFrom": "Pingala"}})
    snake = load_config({"tradition_hints": {"start_from": "Pingala"}})
    assert camel == snake
    assert camel.tradition_hints.start_from == "Pingala"


def test_load_config_defaults():
    assert load_config(None) == DerivationConfig()
    assert load_config(None).tradition_hints.start_from is None


def test_load_config_rejects_malformed():
    with pytest.raises(InvalidInputError):
        load_config({"traditionHints": "Pingala"})
