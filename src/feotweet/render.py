"""Render a SourceItem into HTML, and from there into a RenderedDocument.

The HTML is only an intermediate form: it gets converted to markdown for the
published document. Blocks are concatenated without newlines between them,
since whitespace between block tags leaks into the markdown as stray blank
blockquote lines.
"""

import html
import logging
import re
from collections.abc import Callable, Iterable

from .attachments import AttachmentCollector
from .markdown import html_to_markdown
from .models import TWITTER_URL, Author, RenderedDocument, SourceItem

logger = logging.getLogger(__name__)

STATUS_ID_PATTERN = re.compile(r"/status/(\d+)", re.IGNORECASE)

# Stop at whitespace, quotes, and ")" so "(https://example.com)" links cleanly.
URL_PATTERN = re.compile(r"\b[a-z][a-z0-9+.\-]*://[^\s\")]+", re.IGNORECASE)

# "@name" at the start, after whitespace, or as a leading ".@name" reply.
MENTION_PATTERN = re.compile(
    r"(?:^(\.)|(?<=\s)|^)@([a-z0-9_]{2,15})(?![a-z0-9_])", re.IGNORECASE
)


class QuoteURLError(RuntimeError):
    """A quoted tweet's URL isn't a status URL."""


def render_html(item: SourceItem, attachments: AttachmentCollector) -> str:
    """Render a tweet as an HTML fragment, collecting media as we go."""
    if item.retweeted is not None:
        retweeted = render_html(item.retweeted, attachments.for_retweet())
        return "".join([
            f'<p>{author_html(item.author)} <a href="{item.url}">retweeted</a>:',
            "<blockquote>",
            retweeted,
            "</blockquote>",
        ])

    parts = [
        _header_html(item),
        "<blockquote>",
        f"<p>{text_as_html(item)}",
    ]

    for media in item.media:
        # Always a still image:
        img_src = attachments.add_or_reference(media.media_url_https, item.url)

        # ... which links to the video, if there is one.
        href = img_src
        prefix = ""
        variant = media.best_variant()
        if variant is not None:
            href = attachments.add_or_reference(variant.url, item.url)
            prefix = "Video: "

        parts.append(f'<p>{prefix}<a href="{href}"><img src="{img_src}"></a>')

    parts.append("</blockquote>")

    if item.quoted is not None:
        parts.append("<p>with quote tweet:")
        parts.append(render_html(item.quoted, attachments.for_quote()))

    return "".join(parts)


def to_document(
    item: SourceItem,
    attachments: AttachmentCollector,
    to_markdown: Callable[[str], str] = html_to_markdown,
) -> RenderedDocument:
    """Render a tweet into the document we publish for it."""
    body = to_markdown(render_html(item, attachments))
    return RenderedDocument(
        timestamp_ms=item.timestamp_ms,
        body=body,
        attachments=attachments.infos(),
    )


def author_html(author: Author) -> str:
    link = f'<a href="{author.url}">@{author.screen_name}</a>'
    if author.name and author.name.lower() != author.screen_name.lower():
        link += f' ("{html.escape(author.name, quote=False)}")'
    return link


def _header_html(item: SourceItem) -> str:
    author = author_html(item.author)
    if not item.is_reply:
        return f'<p>{author} <a href="{item.url}">wrote</a>:'

    reply_to = item.in_reply_to_screen_name
    if not reply_to:
        reply_url = f"{TWITTER_URL}/i/web/status/{item.in_reply_to_status_id}"
        return (
            f'<p>{author} <a href="{item.url}">replied</a>'
            f' to a <a href="{reply_url}">tweet</a>:'
        )

    reply_user_url = f"{TWITTER_URL}/{reply_to}"
    reply_url = f"{reply_user_url}/status/{item.in_reply_to_status_id}"
    return (
        f'<p>{author} <a href="{item.url}">replied</a>'
        f' to a <a href="{reply_url}">tweet</a>'
        f' by <a href="{reply_user_url}">@{reply_to}</a>:'
    )


def status_id_from_url(url: str) -> str | None:
    match = STATUS_ID_PATTERN.search(url)
    return match.group(1) if match else None


def find_quote_short_url(item: SourceItem) -> str | None:
    """Find the t.co URL in item's text that points at its quoted tweet.

    Plain string matching doesn't work: the expanded URL may carry a query
    string like ?s=20, and the quoted user may have been renamed since. The
    status ID is the only stable key.
    """
    if item.quoted is None:
        return None

    status_id = status_id_from_url(item.quoted.url)
    if status_id is None:
        raise QuoteURLError(
            f"Tweet {item.url} has quote tweet URL ({item.quoted.url}) "
            "which is not a status URL"
        )

    for entity in item.urls:
        if status_id_from_url(entity.expanded_url) == status_id:
            return entity.url
    return None


def item_text(item: SourceItem) -> str:
    """full_text with short URLs expanded, and quote/media URLs removed.

    Quoted tweets and media get rendered separately, so their URLs would
    only be noise in the text.
    """
    text = item.full_text

    if item.quoted is not None:
        short_url = find_quote_short_url(item)
        if short_url is None:
            logger.warning(
                "No URL for quote tweet: %s %s. Continuing without removing it.",
                item.url,
                item.quoted.url,
            )
            logger.debug("entities: %s text: %r", item.urls, text)
        else:
            text = text.replace(short_url, "")

    for entity in item.urls:
        text = text.replace(entity.url, entity.expanded_url)

    for media in item.media:
        text = text.replace(media.url, "")

    return text


def text_as_html(item: SourceItem) -> str:
    text = item_text(item)

    # Only "<" is escaped; escaping "&" would break the URLs in the text.
    text = text.replace("<", "&lt;")

    text = _replace_matches(
        text,
        URL_PATTERN.finditer(text),
        lambda m: f'<a href="{m.group(0)}">{m.group(0)}</a>',
    )
    text = _replace_matches(
        text,
        MENTION_PATTERN.finditer(text),
        lambda m: (
            f'{m.group(1) or ""}'
            f'<a href="{TWITTER_URL}/{m.group(2)}">@{m.group(2)}</a>'
        ),
    )

    # Last, so it can't interfere with the whitespace matching above.
    return text.replace("\n", "<br>\n")


def _replace_matches(
    text: str,
    matches: Iterable[re.Match],
    replacement: Callable[[re.Match], str],
) -> str:
    # Right to left, so earlier match offsets stay valid.
    for match in reversed(list(matches)):
        start, end = match.span()
        text = text[:start] + replacement(match) + text[end:]
    return text
