import pytest
import yaml

from config import Config
from errors import FailureReason
from fetcher import FetchResult
from main import CombinedFeedOrchestrator
from models import FeedFormat, TitleStyle


EKOT = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>Ekot</title>
<item><title>Ekot 09:00</title><pubDate>Mon, 03 Jun 2024 09:00:00 GMT</pubDate>
<enclosure url="https://sr.example.se/ekot.mp3" type="audio/mpeg" length="1000"/></item>
</channel></rss>"""

NO_AUDIO = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><item><title>Text only</title></item></channel></rss>"""

PODCASTS = {
    "Sweden": {"feeds": [{"id": "ekot", "feed_url": "https://sr.example.se/ekot.rss", "type": "rss"}]},
    "Finland": {"feeds": [{"id": "yle", "feed_url": "https://yle.example.fi/feed.rss", "type": "rss"}]},
    "Norway": {"feeds": [{"id": "nrk", "feed_url": "https://nrk.example.no/feed.rss", "type": "rss"}]},
}


def make_orchestrator(tmp_path, monkeypatch, podcasts=PODCASTS, title_style=TitleStyle.PREFIXED):
    for var in ("PODCAST_TIMEOUT_MS", "PROXY_ENDPOINT", "FETCH_RETRIES"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PLAYED_HISTORY_PATH", str(tmp_path / "played.json"))
    path = tmp_path / "feeds.yaml"
    path.write_text(yaml.safe_dump({"settings": {"title": "Radio"}, "podcasts": podcasts}), encoding="utf-8")
    orchestrator = CombinedFeedOrchestrator(Config(str(path)), title_style)

    async def fake_fetch_all(sources):
        bodies = {"Sweden": EKOT, "Finland": NO_AUDIO}
        return [FetchResult(source=s, body=bodies[s.label]) for s in sources if s.label in bodies]

    monkeypatch.setattr(orchestrator.fetcher, "fetch_all", fake_fetch_all)
    return orchestrator


@pytest.mark.asyncio
async def test_run_pass_reports_each_source(tmp_path, monkeypatch):
    orchestrator = make_orchestrator(tmp_path, monkeypatch)

    report = await orchestrator.run_pass()

    assert [e.title for e in report.episodes] == ["[Sweden] Ekot 09:00"]
    assert [(f.source_label, f.reason) for f in report.failures] == [("Finland", FailureReason.NO_AUDIO_FOUND)]
    assert [s.label for s in report.unreachable] == ["Norway"]

    status = orchestrator.check_status(report)
    assert status["sources"] == {"Sweden": "ok", "Finland": "NoAudioFound", "Norway": "FetchFailed"}
    assert status["overall_status"] == "healthy"


@pytest.mark.asyncio
async def test_bare_titles(tmp_path, monkeypatch):
    orchestrator = make_orchestrator(tmp_path, monkeypatch, title_style=TitleStyle.BARE)

    report = await orchestrator.run_pass()

    assert report.episodes[0].title == "Ekot 09:00"
    assert report.episodes[0].prefixed_title == "[Sweden] Ekot 09:00"


@pytest.mark.asyncio
async def test_build_feed_contains_episode(tmp_path, monkeypatch):
    orchestrator = make_orchestrator(tmp_path, monkeypatch)

    xml = await orchestrator.build_feed()

    assert "[Sweden] Ekot 09:00" in xml
    assert "https://sr.example.se/ekot.mp3" in xml
    assert "Text only" not in xml


@pytest.mark.asyncio
async def test_build_feed_serves_error_feed_on_config_error(tmp_path, monkeypatch):
    monkeypatch.setenv("PLAYED_HISTORY_PATH", str(tmp_path / "played.json"))
    orchestrator = CombinedFeedOrchestrator(Config(str(tmp_path / "missing.yaml")))

    async def unexpected_fetch(sources):
        raise AssertionError("no fetch expected")

    monkeypatch.setattr(orchestrator.fetcher, "fetch_all", unexpected_fetch)

    xml = await orchestrator.build_feed()

    assert "Configuration Error" in xml
    assert orchestrator.check_status()["overall_status"] == "issues_detected"


@pytest.mark.asyncio
async def test_queue_skips_played_episodes(tmp_path, monkeypatch):
    orchestrator = make_orchestrator(tmp_path, monkeypatch)
    first = (await orchestrator.queue())[0]

    orchestrator.history.mark_played(first)

    assert await orchestrator.queue() == []


def test_declared_format_reaches_sources(tmp_path, monkeypatch):
    orchestrator = make_orchestrator(tmp_path, monkeypatch)

    assert {s.declared_format for s in orchestrator.settings.feed_sources()} == {FeedFormat.XML}
