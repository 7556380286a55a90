"""Tests for YAML configuration loading and env resolution."""

from __future__ import annotations

import os
import textwrap

import pytest

from blocket_notifier.config import SETTINGS_PATH, load_config

SETTINGS = textwrap.dedent("""
    crawler:
      base_url: "https://www.blocket.se/"
      index_url: "https://www.blocket.se/annonser/stockholm/bostad"
      index_params:
        mre: 8000
      max_pages: ${CRAWLER_MAX_PAGES:-0}
      timeout_seconds: 10
      scan_interval_minutes: 15
      user_agents: ["agent-a", "agent-b"]
    notify:
      sms:
        gateway_url: ${SMS_GATEWAY_URL:-}
    leads:
      api_url: "https://leads.example/v1"
      access_token: ${LEADS_ACCESS_TOKEN:-}
      notify: ${LEADS_NOTIFY:-false}
    database:
      path: ${DB_PATH}
    logging:
      level: INFO
""")


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(SETTINGS, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("CRAWLER_MAX_PAGES", "SMS_GATEWAY_URL", "LEADS_ACCESS_TOKEN", "LEADS_NOTIFY", "DB_PATH", "RECIPIENTS_PATH"):
        monkeypatch.delenv(var, raising=False)


def test_load_with_defaults(settings_file, tmp_path, monkeypatch):
    monkeypatch.setenv("DB_PATH", "data/test.db")

    config = load_config(settings_file, env_path=tmp_path / "missing.env")

    assert config.crawler.base_url == "https://www.blocket.se"
    assert config.crawler.index_params == {"mre": "8000"}
    assert config.crawler.max_pages is None
    assert config.crawler.page_param == "o"
    assert config.notify.sms_gateway_url == ""
    assert config.notify.wave_size == 50
    assert config.leads.enabled is False
    assert config.leads.notify is False
    assert config.leads.owner_denylist == ["samtrygg", "renthia"]
    assert config.telegram.enabled is False
    assert config.database_path == "data/test.db"


def test_env_values_override_defaults(settings_file, tmp_path, monkeypatch):
    monkeypatch.setenv("DB_PATH", "data/test.db")
    monkeypatch.setenv("CRAWLER_MAX_PAGES", "4")
    monkeypatch.setenv("LEADS_ACCESS_TOKEN", "tok")
    monkeypatch.setenv("LEADS_NOTIFY", "true")

    config = load_config(settings_file, env_path=tmp_path / "missing.env")

    assert config.crawler.max_pages == 4
    assert config.leads.enabled is True
    assert config.leads.notify is True


def test_dotenv_file_is_read(settings_file, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DB_PATH=data/from-dotenv.db\n", encoding="utf-8")

    try:
        config = load_config(settings_file, env_path=env_file)
    finally:
        os.environ.pop("DB_PATH", None)

    assert config.database_path == "data/from-dotenv.db"


def test_missing_required_variable_raises(settings_file, tmp_path):
    with pytest.raises(ValueError, match="DB_PATH"):
        load_config(settings_file, env_path=tmp_path / "missing.env")


def test_missing_section_raises(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text("crawler: {}\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Missing required configuration keys"):
        load_config(path, env_path=tmp_path / "missing.env")


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", env_path=tmp_path / "missing.env")


def test_shipped_settings_load(tmp_path):
    config = load_config(SETTINGS_PATH, env_path=tmp_path / "missing.env")

    assert config.crawler.detail_wave_size == 50
    assert config.leads.mobile_pattern == r"^(\+46|0|46)7"
