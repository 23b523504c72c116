"""Parse Twitter v1.1 status JSON into SourceItem model objects.

A status nests other statuses:
    status -> retweeted_status -> ...
    status -> quoted_status -> ...

Media comes from extended_entities (entities.media only ever holds the first
photo), and requires tweet_mode=extended to get untruncated full_text.
"""

import logging
from datetime import datetime

from .models import Author, MediaEntity, SourceItem, UrlEntity, VideoVariant

logger = logging.getLogger(__name__)

# Twitter's date format: "Thu May 14 18:01:35 +0000 2020"
TWITTER_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"

# Retweets of quote tweets nest two deep in practice.
MAX_NESTING_DEPTH = 8


class ParseError(RuntimeError):
    """Upstream JSON is missing a field we need, or is shaped unexpectedly."""


def parse_items(statuses: list[dict]) -> list[SourceItem]:
    return [parse_item(status) for status in statuses]


def parse_item(status: dict, _depth: int = 0) -> SourceItem:
    """Parse one status dict. Raises ParseError rather than guessing."""
    if _depth > MAX_NESTING_DEPTH:
        raise ParseError(
            f"Status nesting deeper than {MAX_NESTING_DEPTH} levels "
            f"(at id {status.get('id_str', '?')})"
        )

    status_id = status.get("id_str", "?")
    try:
        return _parse_status(status, _depth)
    except ParseError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Malformed status {status_id}: {e!r}") from e


def _parse_status(status: dict, depth: int) -> SourceItem:
    if "full_text" not in status:
        raise ParseError(
            f"Status {status.get('id_str', '?')} has no full_text. "
            "Was it fetched with tweet_mode=extended?"
        )

    retweeted = None
    if status.get("retweeted_status"):
        retweeted = parse_item(status["retweeted_status"], depth + 1)

    quoted = None
    if status.get("quoted_status"):
        quoted = parse_item(status["quoted_status"], depth + 1)

    entities = status.get("entities") or {}
    media_entities = (status.get("extended_entities") or {}).get("media", [])

    return SourceItem(
        id=status["id_str"],
        author=_parse_author(status["user"]),
        created_at=datetime.strptime(status["created_at"], TWITTER_DATE_FORMAT),
        full_text=status["full_text"],
        in_reply_to_status_id=status.get("in_reply_to_status_id_str"),
        in_reply_to_screen_name=status.get("in_reply_to_screen_name"),
        retweeted=retweeted,
        quoted=quoted,
        urls=tuple(_parse_url_entity(u) for u in entities.get("urls", [])),
        media=tuple(_parse_media(m) for m in media_entities),
    )


def _parse_author(user: dict) -> Author:
    return Author(
        id=user.get("id_str", ""),
        name=user.get("name", ""),
        screen_name=user["screen_name"],
        protected=bool(user.get("protected", False)),
    )


def _parse_url_entity(entity: dict) -> UrlEntity:
    start, end = entity.get("indices", [0, 0])
    return UrlEntity(
        url=entity["url"],
        expanded_url=entity.get("expanded_url") or entity["url"],
        indices=(int(start), int(end)),
    )


def _parse_media(media: dict) -> MediaEntity:
    video_info = media.get("video_info") or {}
    variants = tuple(
        VideoVariant(
            url=v["url"],
            bitrate=v.get("bitrate"),
            content_type=v.get("content_type", ""),
        )
        for v in video_info.get("variants", [])
    )
    return MediaEntity(
        type=media.get("type", "photo"),
        url=media["url"],
        display_url=media.get("display_url", ""),
        media_url_https=media["media_url_https"],
        variants=variants,
    )
