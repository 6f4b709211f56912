from detector import Format, JsonFeed, UnknownFeed, XmlFeed, detect, sniff


RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Ekot</title>
    <item><title>Latest</title></item>
    <item><title>Older</title></item>
  </channel>
</rss>"""

DR_JSON = '{"items": [{"title": "A", "assets": [{"kind": "Audio", "url": "http://x/a.mp3"}]}]}'


def test_rss_bytes_are_xml():
    assert detect(RSS) == Format.XML


def test_sniff_returns_channel_items_in_feed_order():
    detected = sniff(RSS)

    assert isinstance(detected, XmlFeed)
    assert [item.findtext('title') for item in detected.items] == ["Latest", "Older"]


def test_text_with_declared_encoding_and_bom_is_xml():
    text = '\ufeff  <?xml version="1.0" encoding="ISO-8859-1"?><rss><channel><item><title>Nyheder æøå</title></item></channel></rss>'

    detected = sniff(text)

    assert isinstance(detected, XmlFeed)
    assert detected.items[0].findtext('title') == "Nyheder æøå"


def test_json_with_items_list():
    detected = sniff(DR_JSON)

    assert isinstance(detected, JsonFeed)
    assert detected.format == Format.JSON
    assert detected.items[0]["title"] == "A"


def test_json_without_items_list_is_unknown():
    assert detect('{"episodes": []}') == Format.UNKNOWN
    assert detect('{"items": "nope"}') == Format.UNKNOWN
    assert detect('[{"items": []}]') == Format.UNKNOWN


def test_rss_without_items_is_unknown():
    assert detect("<rss><channel><title>Empty</title></channel></rss>") == Format.UNKNOWN


def test_atom_feed_is_unknown():
    atom = '<feed xmlns="http://www.w3.org/2005/Atom"><entry><title>x</title></entry></feed>'

    assert detect(atom) == Format.UNKNOWN


def test_malformed_input_never_raises():
    for raw in (None, b"", "   ", "<rss><channel><item>", "{not json", b"\x00\xff\xfe", "plain text"):
        detected = sniff(raw)
        assert isinstance(detected, UnknownFeed)
        assert detected.format == Format.UNKNOWN


def test_json_hint_only_reorders_attempts():
    assert detect(DR_JSON, hint="json") == Format.JSON
    assert detect(RSS, hint="application/json") == Format.XML
    assert detect(DR_JSON, hint="https://api.dr.dk/podcasts/v1/feeds/radioavisen") == Format.JSON


def test_entity_expansion_feed_is_unknown():
    feed = (
        '<?xml version="1.0"?>'
        '<!DOCTYPE rss [<!ENTITY a "' + "A" * 2000 + '"><!ENTITY b "' + "&a;" * 2000 + '">]>'
        '<rss><channel><item><title>&b;</title>'
        '<enclosure url="http://x/a.mp3" type="audio/mpeg"/></item></channel></rss>'
    )

    detected = sniff(feed)

    assert isinstance(detected, UnknownFeed)
    assert detect(feed.encode("utf-8")) == Format.UNKNOWN
