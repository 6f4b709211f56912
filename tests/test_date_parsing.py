from datetime import datetime, timezone

from models import PublishDate
from utils import parse_feed_date


def test_parse_date_without_weekday():
    parsed = parse_feed_date("17 Nov 2025 00:00:00 +0000")

    assert parsed.value == datetime(2025, 11, 17, tzinfo=timezone.utc)


def test_parse_rfc822_date_with_weekday():
    parsed = parse_feed_date("Sat, 15 Nov 2025 16:00:00 +0000")

    assert parsed.value == datetime(2025, 11, 15, 16, 0, tzinfo=timezone.utc)


def test_parse_gmt_feed_date():
    parsed = parse_feed_date("Tue, 03 Jun 2025 09:00:00 GMT")

    assert parsed.value == datetime(2025, 6, 3, 9, 0, tzinfo=timezone.utc)
    assert parsed.display() == "2025-06-03"


def test_parse_iso8601_with_zulu_and_offset():
    assert parse_feed_date("2025-01-01T00:00:00Z").value == datetime(2025, 1, 1, tzinfo=timezone.utc)
    offset = parse_feed_date("2025-01-01T02:00:00+02:00").value
    assert offset.timestamp() == datetime(2025, 1, 1, tzinfo=timezone.utc).timestamp()


def test_parse_iso8601_with_fractional_seconds():
    parsed = parse_feed_date("2025-03-04T05:06:07.123Z")

    assert parsed.known
    assert parsed.value.replace(microsecond=0) == datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


def test_unparseable_and_missing_dates_are_unknown():
    for text in ("not a date", "", None, "   "):
        parsed = parse_feed_date(text)
        assert isinstance(parsed, PublishDate)
        assert not parsed.known


def test_unknown_dates_sort_before_epoch_in_ascending_key_order():
    unknown = parse_feed_date("garbage")
    epoch = PublishDate(datetime(1970, 1, 1, tzinfo=timezone.utc), "epoch")

    assert unknown.sort_key() < epoch.sort_key()
    assert epoch.known and not unknown.known
