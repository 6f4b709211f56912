import xml.etree.ElementTree as ET

from extractor import extract_from_json_item, extract_from_xml_item, find_audio_url_in_text
from models import RawFields


NAMESPACES = (
    'xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd" '
    'xmlns:media="http://search.yahoo.com/mrss/" '
    'xmlns:content="http://purl.org/rss/1.0/modules/content/" '
    'xmlns:dc="http://purl.org/dc/elements/1.1/"'
)


def make_item(inner: str) -> ET.Element:
    return ET.fromstring(f"<item {NAMESPACES}>{inner}</item>")


def test_standard_audio_enclosure_is_returned_verbatim():
    url = "https://sr-cdn.example.se/ekot/2025-06-03_0900.mp3?source=rss&amp;t=1"
    item = make_item(f'<title>Ekot</title><enclosure url="{url}" type="audio/mpeg" length="4567"/>')

    fields = extract_from_xml_item(item)

    assert fields.enclosure_url == "https://sr-cdn.example.se/ekot/2025-06-03_0900.mp3?source=rss&t=1"
    assert fields.enclosure_type == "audio/mpeg"
    assert fields.enclosure_length == 4567


def test_audio_enclosure_wins_over_earlier_non_audio_enclosure():
    item = make_item(
        '<enclosure url="http://x/cover.jpg" type="image/jpeg"/>'
        '<enclosure url="http://x/news" type="audio/aac"/>'
    )

    assert extract_from_xml_item(item).enclosure_url == "http://x/news"


def test_media_content_fallback():
    item = make_item('<title>B</title><media:content type="audio/mpeg" url="http://x/b.mp3" fileSize="12345"/>')

    fields = extract_from_xml_item(item)

    assert fields.enclosure_url == "http://x/b.mp3"
    assert fields.enclosure_length == 12345
    assert fields.enclosure_type == "audio/mpeg"


def test_media_group_with_audio_medium():
    item = make_item(
        '<media:group>'
        '<media:content url="http://x/clip.mp4" type="video/mp4"/>'
        '<media:content url="http://x/news.m4a" medium="audio" duration="95.5"/>'
        '</media:group>'
    )

    fields = extract_from_xml_item(item)

    assert fields.enclosure_url == "http://x/news.m4a"
    assert fields.enclosure_type == "audio/mp4"
    assert fields.duration_ms == 95000


def test_enclosure_with_audio_extension_regardless_of_type():
    item = make_item('<enclosure url="http://x/bulletin.wav"/>')

    fields = extract_from_xml_item(item)

    assert fields.enclosure_url == "http://x/bulletin.wav"
    assert fields.enclosure_type == "audio/wav"


def test_audio_link_in_escaped_description_html():
    item = make_item(
        '<title>Nyheter</title>'
        '<description>&lt;p&gt;Lyssna: &lt;a href="https://cdn.example.no/dagsnytt.mp3?dl=1"&gt;MP3&lt;/a&gt;&lt;/p&gt;</description>'
    )

    fields = extract_from_xml_item(item)

    assert fields.enclosure_url == "https://cdn.example.no/dagsnytt.mp3?dl=1"
    assert fields.enclosure_type == "audio/mpeg"
    assert fields.description == "Lyssna: MP3"


def test_audio_url_in_plain_text():
    assert find_audio_url_in_text("Listen at https://cdn.example.com/news.mp3 today") == "https://cdn.example.com/news.mp3"
    assert find_audio_url_in_text("Read https://example.com/story.html") is None


def test_audio_url_in_content_encoded():
    item = make_item(
        '<description>Short summary</description>'
        '<content:encoded><![CDATA[<audio src="https://x/full.m4a"></audio>]]></content:encoded>'
    )

    fields = extract_from_xml_item(item)

    assert fields.enclosure_url == "https://x/full.m4a"
    assert fields.description == "Short summary"


def test_empty_enclosure_url_means_no_audio():
    item = make_item('<title>Silent</title><enclosure url="" type="audio/mpeg"/>')

    fields = extract_from_xml_item(item)

    assert fields.enclosure_url is None
    assert fields.title == "Silent"


def test_itunes_duration_parsing():
    assert extract_from_xml_item(make_item('<itunes:duration>1:02:03</itunes:duration>')).duration_ms == 3723000
    assert extract_from_xml_item(make_item('<itunes:duration>05:30</itunes:duration>')).duration_ms == 330000
    assert extract_from_xml_item(make_item('<itunes:duration>bogus</itunes:duration>')).duration_ms is None
    assert extract_from_xml_item(make_item('<title>x</title>')).duration_ms is None


def test_media_duration_takes_precedence_over_itunes_duration():
    item = make_item(
        '<media:content url="http://x/a.mp3" type="audio/mpeg" duration="120"/>'
        '<itunes:duration>9:99:99</itunes:duration>'
    )

    assert extract_from_xml_item(item).duration_ms == 120000


def test_text_cleaning_of_title_and_description():
    item = make_item(
        '<title>  &lt;b&gt;Hello&lt;/b&gt; &amp;amp; bye </title>'
        '<description>&lt;p&gt;1 &amp;lt; 2&lt;/p&gt;</description>'
    )

    fields = extract_from_xml_item(item)

    assert fields.title == "Hello & bye"
    assert fields.description == "1 < 2"


def test_description_and_date_fallbacks():
    item = make_item(
        '<itunes:summary>Summary text</itunes:summary>'
        '<dc:date>2025-06-03T09:00:00Z</dc:date>'
    )

    fields = extract_from_xml_item(item)

    assert fields.description == "Summary text"
    assert fields.pub_date_text == "2025-06-03T09:00:00Z"


def test_json_item_fields():
    item = {
        "title": "Radioavisen <i>kl. 9</i>",
        "url": "https://www.dr.dk/lyd/p1/radioavisen",
        "description": "Nyheder",
        "publishTime": "2025-01-01T00:00:00Z",
        "duration": {"totalMilliseconds": 300000},
        "assets": [
            {"kind": "Image", "url": "http://x/cover.jpg"},
            {"kind": "Audio", "url": "http://x/a.m4a", "format": "m4a", "fileSize": 2048},
        ],
    }

    fields = extract_from_json_item(item)

    assert fields.title == "Radioavisen kl. 9"
    assert fields.link == "https://www.dr.dk/lyd/p1/radioavisen"
    assert fields.pub_date_text == "2025-01-01T00:00:00Z"
    assert fields.enclosure_url == "http://x/a.m4a"
    assert fields.enclosure_type == "audio/mp4"
    assert fields.enclosure_length == 2048
    assert fields.duration_ms == 300000


def test_json_item_without_audio_asset():
    assert extract_from_json_item({"title": "A"}).enclosure_url is None
    assert extract_from_json_item({"title": "A", "assets": []}).enclosure_url is None
    assert extract_from_json_item({"title": "A", "assets": [{"kind": "Video", "url": "http://x/v.mp4"}]}).enclosure_url is None


def test_json_duration_milliseconds_field():
    assert extract_from_json_item({"durationMilliseconds": 61000}).duration_ms == 61000


def test_non_object_json_item_yields_empty_fields():
    assert extract_from_json_item("not an object") == RawFields()


def test_non_finite_and_non_ascii_numbers_are_absent():
    superscript = make_item(
        '<enclosure url="http://x/a.mp3" type="audio/mpeg" length="¹²"/>'
        '<itunes:duration>²</itunes:duration>'
    )
    infinite = make_item('<media:content url="http://x/a.mp3" type="audio/mpeg" duration="inf"/>')
    not_a_number = make_item('<media:content url="http://x/a.mp3" type="audio/mpeg" duration="NaN"/>')

    fields = extract_from_xml_item(superscript)
    assert fields.enclosure_url == "http://x/a.mp3"
    assert fields.enclosure_length is None
    assert fields.duration_ms is None
    assert extract_from_xml_item(infinite).duration_ms is None
    assert extract_from_xml_item(not_a_number).duration_ms is None


def test_json_infinite_duration_is_absent():
    assert extract_from_json_item({"durationMilliseconds": float("inf")}).duration_ms is None
    assert extract_from_json_item({"duration": {"totalMilliseconds": float("nan")}}).duration_ms is None
    assert extract_from_json_item({"durationMilliseconds": "Infinity"}).duration_ms is None
