"""Tests for the tolerant RSS/Atom parser."""

from crawlwatch.feeds.parser import FeedParser, UNTITLED_FEED, clean_text

RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel>
  <title>Prophecy News</title>
  <link>https://news.example/</link>
  <item>
    <title><![CDATA[First &amp; foremost]]></title>
    <link>https://news.example/1</link>
    <description><![CDATA[<p>Some <b>bold</b> text</p>]]></description>
    <pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate>
  </item>
  <item>
    <title>No link here</title>
    <description>dropped</description>
  </item>
  <item>
    <title>Second</title>
    <link>https://news.example/2</link>
    <description>&lt;em&gt;encoded&lt;/em&gt; markup</description>
  </item>
</channel></rss>
"""

ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Feed</title>
  <link href="https://atom.example/"/>
  <entry>
    <title>Atom entry</title>
    <link rel="self" href="https://atom.example/self/1"/>
    <link rel="alternate" href="https://atom.example/1"/>
    <summary>Summary text</summary>
    <published>2024-01-01T00:00:00Z</published>
  </entry>
  <entry>
    <title>Only self link</title>
    <link rel="self" href="https://atom.example/self/2"/>
    <content type="html">Content text</content>
  </entry>
</feed>
"""


def test_parses_rss_items_in_order():
    feed = FeedParser().parse(RSS)

    assert feed.title == 'Prophecy News'
    assert [entry.link for entry in feed.entries] == ['https://news.example/1', 'https://news.example/2']

    first = feed.entries[0]
    assert first.title == 'First & foremost'
    assert first.description == 'Some bold text'
    assert first.pub_date == 'Mon, 01 Jan 2024 00:00:00 GMT'


def test_entity_encoded_markup_is_stripped():
    feed = FeedParser().parse(RSS)

    assert feed.entries[1].description == 'encoded markup'


def test_parses_atom_entries():
    feed = FeedParser().parse(ATOM)

    assert feed.title == 'Atom Feed'
    assert [entry.link for entry in feed.entries] == ['https://atom.example/1', 'https://atom.example/self/2']
    assert feed.entries[0].description == 'Summary text'
    assert feed.entries[0].pub_date == '2024-01-01T00:00:00Z'
    assert feed.entries[1].description == 'Content text'


def test_truncated_item_yields_no_entry():
    markup = RSS.replace('</channel></rss>', '<item><title>Cut off</title><link>https://news.example/3</link>')

    feed = FeedParser().parse(markup)

    assert len(feed.entries) == 2


def test_truncated_item_in_middle_does_not_swallow_next_entry():
    markup = (
        '<rss><channel><title>T</title>'
        '<item><title>Cut off</title><link>https://news.example/bad</link>'
        '<item><title>Good one</title><link>https://news.example/good</link></item>'
        '</channel></rss>'
    )

    feed = FeedParser().parse(markup)

    assert [e.link for e in feed.entries] == ['https://news.example/good']
    assert feed.entries[0].title == 'Good one'


def test_empty_or_garbage_markup():
    assert FeedParser().parse('').title == UNTITLED_FEED
    assert FeedParser().parse('').entries == ()
    assert FeedParser().parse('not a feed at all').entries == ()


def test_entry_content_combines_title_and_description():
    entry = FeedParser().parse(RSS).entries[0]

    assert entry.content == 'First & foremost Some bold text'
    assert entry.to_dict()['pubDate'] == entry.pub_date


def test_clean_text():
    assert clean_text('  <![CDATA[a\n\n b]]>  ') == 'a b'
    assert clean_text('') == ''
