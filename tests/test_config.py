import json

import pytest
import yaml

from config import Config
from models import FeedFormat


FEEDS = {
    "settings": {
        "title": "Nordic News",
        "feed_cache_time": 600,
        "podcast_timeout": 3000,
        "enabled_countries": {"podcasts": ["Denmark", "Sweden"]},
        "allowed_domains": ["API.DR.DK", " sr.se "],
    },
    "podcasts": {
        "Denmark": {
            "flag": "🇩🇰",
            "feeds": [
                {"id": "radioavisen", "name": "Radioavisen", "feed_url": "https://api.dr.dk/radioavisen",
                 "type": "json", "requires_proxy": True},
                {"id": "p1-morgen", "feed_url": "https://api.dr.dk/p1-morgen", "type": "json"},
            ],
        },
        "Sweden": {"feeds": [{"id": "ekot", "feed_url": "https://sr.se/ekot.rss", "type": "rss"}]},
        "Norway": {"feeds": [{"id": "dagsnytt", "feed_url": "https://nrk.no/dagsnytt.rss"}]},
    },
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("PODCAST_TIMEOUT_MS", "PROXY_ENDPOINT", "FETCH_CONCURRENCY", "FEEDS_CONFIG_PATH"):
        monkeypatch.delenv(var, raising=False)


def write_yaml(tmp_path, data):
    path = tmp_path / "feeds.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return str(path)


def test_loads_settings_and_first_feed_per_enabled_country(tmp_path):
    settings = Config(write_yaml(tmp_path, FEEDS))

    assert settings.load_error is None
    assert settings.TITLE == "Nordic News"
    assert settings.FEED_CACHE_TIME == 600
    assert settings.PODCAST_TIMEOUT_MS == 3000
    assert settings.podcast_timeout_seconds == 3.0
    assert settings.ALLOWED_DOMAINS == ["api.dr.dk", "sr.se"]

    sources = settings.feed_sources()
    assert [(s.label, s.feed_id) for s in sources] == [("Denmark", "radioavisen"), ("Sweden", "ekot")]
    assert sources[0].declared_format == FeedFormat.JSON
    assert sources[0].requires_proxy is True
    assert sources[1].declared_format == FeedFormat.XML


def test_all_feed_sources_and_find_feed(tmp_path):
    settings = Config(write_yaml(tmp_path, FEEDS))

    assert [s.feed_id for s in settings.all_feed_sources()] == ["radioavisen", "p1-morgen", "ekot"]
    assert settings.find_feed("p1-morgen").url == "https://api.dr.dk/p1-morgen"
    assert settings.find_feed("dagsnytt") is None


def test_accepts_original_json_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "settings": {"feedCacheTime": 900, "podcastTimeout": 4000, "allowedDomains": ["api.dr.dk"]},
        "podcasts": {"Denmark": {"feeds": [{"id": "ra", "feedUrl": "https://api.dr.dk/ra", "type": "json",
                                            "requiresProxy": True}]}},
    }), encoding="utf-8")

    settings = Config(str(path))

    assert settings.FEED_CACHE_TIME == 900
    assert settings.PODCAST_TIMEOUT_MS == 4000
    source = settings.feed_sources()[0]
    assert source.url == "https://api.dr.dk/ra"
    assert source.requires_proxy is True


def test_missing_file_records_load_error(tmp_path):
    settings = Config(str(tmp_path / "missing.yaml"))

    assert settings.load_error is not None
    assert "not found" in settings.load_error
    assert settings.feed_sources() == []
    assert settings.PODCAST_TIMEOUT_MS == 5000


def test_invalid_yaml_records_load_error(tmp_path):
    path = tmp_path / "feeds.yaml"
    path.write_text("settings: [unclosed", encoding="utf-8")

    settings = Config(str(path))

    assert settings.load_error is not None
    assert settings.feed_sources() == []


def test_environment_overrides_and_validation(tmp_path, monkeypatch):
    monkeypatch.setenv("PODCAST_TIMEOUT_MS", "1500")
    monkeypatch.setenv("FETCH_CONCURRENCY", "zero")

    settings = Config(write_yaml(tmp_path, FEEDS))

    assert settings.PODCAST_TIMEOUT_MS == 1500
    assert settings.FETCH_CONCURRENCY == 5


def test_feed_without_url_is_skipped(tmp_path):
    data = {"settings": {}, "podcasts": {"Iceland": {"feeds": [{"id": "ruv"}, {"id": "ruv2", "feed_url": "https://ruv.is/f"}]}}}

    settings = Config(write_yaml(tmp_path, data))

    assert [s.feed_id for s in settings.feed_sources()] == ["ruv2"]


def test_config_summary(tmp_path):
    summary = Config(write_yaml(tmp_path, FEEDS)).get_config_summary()

    assert summary["feed_count"] == 3
    assert summary["combined_source_count"] == 2
    assert summary["load_error"] is None
