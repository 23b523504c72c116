"""Tests for rendering tweets to HTML."""

import dataclasses

import httpx
import pytest
import respx

from feotweet.attachments import Attachments, NoOpAttachments
from feotweet.models import MediaEntity, UrlEntity, VideoVariant
from feotweet.parser import parse_item
from feotweet.render import (
    QuoteURLError,
    find_quote_short_url,
    item_text,
    render_html,
    status_id_from_url,
    text_as_html,
    to_document,
)


@pytest.fixture
def tweet_with_body(make_status):
    def _tweet_with_body(body: str, **extra):
        return parse_item(make_status(full_text=body, **extra))

    return _tweet_with_body


class TestLinks:
    def test_html_links(self, tweet_with_body):
        item = tweet_with_body(
            "Here is (https://example.com/foo and https://www.example.com/bar) the thing."
        )

        expected = "".join([
            '<p><a href="https://twitter.com/TestUser">@TestUser</a> ("Test user") ',
            '<a href="https://twitter.com/TestUser/status/0000">wrote</a>:',
            "<blockquote>",
            '<p>Here is (<a href="https://example.com/foo">https://example.com/foo</a>',
            ' and <a href="https://www.example.com/bar">https://www.example.com/bar</a>) the thing.',
            "</blockquote>",
        ])

        assert render_html(item, NoOpAttachments()) == expected

    def test_url_stops_at_quote(self, tweet_with_body):
        html = text_as_html(tweet_with_body('see "https://example.com/x" ok'))
        assert '"<a href="https://example.com/x">https://example.com/x</a>"' in html

    def test_mentions_linked(self, tweet_with_body):
        html = text_as_html(tweet_with_body("@foo and @bar should be linked"))
        assert html == (
            '<a href="https://twitter.com/foo">@foo</a> and '
            '<a href="https://twitter.com/bar">@bar</a> should be linked'
        )

    def test_leading_dot_mention(self, tweet_with_body):
        html = text_as_html(tweet_with_body(".@foo, but not .@bar should be linked"))
        assert html == (
            '.<a href="https://twitter.com/foo">@foo</a>, '
            "but not .@bar should be linked"
        )

    def test_mention_inside_word_not_linked(self, tweet_with_body):
        html = text_as_html(tweet_with_body("mail me@example.com"))
        assert "<a" not in html

    def test_mention_too_long_not_linked(self, tweet_with_body):
        html = text_as_html(tweet_with_body("@abcdefghijklmnopq hi"))
        assert "<a" not in html

    def test_escapes_less_than(self, tweet_with_body):
        html = text_as_html(tweet_with_body("<script>alert(1)</script>"))
        assert "<script>" not in html
        assert html.startswith("&lt;script>")

    def test_newlines_become_breaks(self, tweet_with_body):
        html = text_as_html(tweet_with_body("line one\n@foo line two"))
        assert html == (
            'line one<br>\n<a href="https://twitter.com/foo">@foo</a> line two'
        )


class TestItemText:
    def test_expands_short_urls(self, sample_items):
        text = item_text(sample_items[0])
        assert "https://example.com/article" in text
        assert "https://t.co/abc123" not in text

    def test_removes_media_short_urls(self, sample_items):
        text = item_text(sample_items[1])
        assert "https://t.co/img456" not in text
        assert text.strip() == "Check out this image"

    def test_removes_quote_url_by_status_id(self, sample_items):
        item = sample_items[2]
        text = item_text(item)
        assert "t.co/qt789" not in text
        assert "4444444444" not in text
        assert text.strip() == "Great take on this topic"

    def test_quote_url_found_despite_rename_and_query_string(self, sample_items):
        item = sample_items[2]
        # The entity points at the quoted tweet under an old screen name and
        # with ?s=20, so comparing URLs as strings finds nothing:
        naive = [u.url for u in item.urls if u.expanded_url == item.quoted.url]
        assert naive == []

        assert find_quote_short_url(item) == "https://t.co/qt789"

    def test_matches_status_id_not_similar_url(self, sample_items):
        item = sample_items[2]
        decoy = UrlEntity(
            url="https://t.co/decoy",
            expanded_url="https://twitter.com/originalauthor/status/4444444445?s=20",
        )
        item = dataclasses.replace(item, urls=(decoy, *item.urls))
        assert find_quote_short_url(item) == "https://t.co/qt789"

    def test_unmatched_quote_url_is_left_in_text(self, sample_items):
        item = dataclasses.replace(sample_items[2], urls=())
        assert find_quote_short_url(item) is None
        assert "https://t.co/qt789" in item_text(item)

    def test_quote_without_status_url_is_fatal(self, sample_items):
        item = sample_items[2]
        quoted = dataclasses.replace(item.quoted, id="not-a-number")
        item = dataclasses.replace(item, quoted=quoted)
        with pytest.raises(QuoteURLError):
            item_text(item)

    def test_status_id_from_url(self):
        assert status_id_from_url("https://twitter.com/a/status/123?s=20") == "123"
        assert status_id_from_url("https://example.com/foo") is None


class TestRenderHtml:
    def test_reply_header(self, tweet_with_body):
        item = tweet_with_body(
            "@other yes",
            in_reply_to_status_id_str="42",
            in_reply_to_screen_name="other",
        )
        html = render_html(item, NoOpAttachments())
        assert html.startswith(
            '<p><a href="https://twitter.com/TestUser">@TestUser</a> ("Test user") '
            '<a href="https://twitter.com/TestUser/status/0000">replied</a>'
            ' to a <a href="https://twitter.com/other/status/42">tweet</a>'
            ' by <a href="https://twitter.com/other">@other</a>:'
        )

    def test_display_name_hidden_when_same_as_handle(self, tweet_with_body):
        item = tweet_with_body("hi", name="testuser")
        html = render_html(item, NoOpAttachments())
        assert html.startswith('<p><a href="https://twitter.com/TestUser">@TestUser</a> <a')

    def test_retweet(self, make_status):
        inner = make_status(id_str="2", screen_name="inner", name="inner", full_text="Original")
        item = parse_item(
            make_status(id_str="1", full_text="RT @inner: Original", retweeted_status=inner)
        )

        html = render_html(item, NoOpAttachments())

        assert html == "".join([
            '<p><a href="https://twitter.com/TestUser">@TestUser</a> ("Test user") ',
            '<a href="https://twitter.com/TestUser/status/1">retweeted</a>:',
            "<blockquote>",
            '<p><a href="https://twitter.com/inner">@inner</a> ',
            '<a href="https://twitter.com/inner/status/2">wrote</a>:',
            "<blockquote><p>Original</blockquote>",
            "</blockquote>",
        ])

    def test_quote_tweet(self, sample_items):
        html = render_html(sample_items[2], NoOpAttachments())
        assert "</blockquote><p>with quote tweet:<p>" in html
        assert '<a href="https://twitter.com/originalauthor/status/4444444444">wrote</a>' in html

    def test_photo(self, sample_items):
        html = render_html(sample_items[1], NoOpAttachments())
        src = "https://pbs.twimg.com/media/test123.jpg"
        assert f'<p><a href="{src}"><img src="{src}"></a>' in html

    def test_video_uses_highest_bitrate(self, tweet_with_body):
        item = tweet_with_body("clip")
        video = MediaEntity(
            type="video",
            url="https://t.co/v",
            display_url="pic.twitter.com/v",
            media_url_https="https://pbs.twimg.com/thumb.jpg",
            variants=(
                VideoVariant(url="https://video.twimg.com/pl.m3u8"),
                VideoVariant(url="https://video.twimg.com/high.mp4", bitrate=2176000),
                VideoVariant(url="https://video.twimg.com/low.mp4", bitrate=832000),
            ),
        )
        item = dataclasses.replace(item, media=(video,))

        html = render_html(item, NoOpAttachments())

        assert (
            '<p>Video: <a href="https://video.twimg.com/high.mp4">'
            '<img src="https://pbs.twimg.com/thumb.jpg"></a>'
        ) in html

    def test_video_without_bitrates_uses_first_variant(self):
        media = MediaEntity(
            type="animated_gif",
            url="https://t.co/g",
            display_url="",
            media_url_https="https://pbs.twimg.com/thumb.jpg",
            variants=(
                VideoVariant(url="https://video.twimg.com/first.mp4"),
                VideoVariant(url="https://video.twimg.com/second.mp4"),
            ),
        )
        assert media.best_variant().url == "https://video.twimg.com/first.mp4"

    def test_deterministic(self, sample_items):
        for item in sample_items:
            assert render_html(item, NoOpAttachments()) == render_html(item, NoOpAttachments())

    @respx.mock
    def test_collects_own_media_but_not_quoted_media(self, sample_items):
        photo = "https://pbs.twimg.com/media/own.jpg"
        quoted_photo = "https://pbs.twimg.com/media/quoted.jpg"
        own = sample_items[1].media[0]
        item = dataclasses.replace(
            sample_items[2],
            media=(dataclasses.replace(own, media_url_https=photo),),
            quoted=dataclasses.replace(
                sample_items[2].quoted,
                media=(dataclasses.replace(own, media_url_https=quoted_photo),),
            ),
        )
        route = respx.get(photo).mock(return_value=httpx.Response(200, content=b"own"))
        quoted_route = respx.get(quoted_photo).mock(
            return_value=httpx.Response(200, content=b"quoted")
        )

        with httpx.Client() as http, Attachments(http) as attachments:
            html = render_html(item, attachments)
            names = [a.name for a in attachments.attachments]

        assert names == ["own.jpg"]
        assert '<img src="files/own.jpg">' in html
        assert f'<img src="{quoted_photo}">' in html
        assert route.call_count == 1
        assert quoted_route.call_count == 0


class TestToDocument:
    def test_document_fields(self, sample_items):
        item = sample_items[0]
        document = to_document(item, NoOpAttachments(), to_markdown=lambda html: "MD:" + html)

        assert document.timestamp_ms == item.timestamp_ms
        assert document.body.startswith("MD:<p>")
        assert document.attachments == ()

    def test_serialize_is_stable(self, sample_items):
        item = sample_items[0]
        first = to_document(item, NoOpAttachments(), to_markdown=str.upper).serialize()
        second = to_document(item, NoOpAttachments(), to_markdown=str.upper).serialize()
        assert first == second
