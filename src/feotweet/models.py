"""Data models for upstream tweets and the documents rendered from them."""

import json
from dataclasses import dataclass, field
from datetime import datetime

TWITTER_URL = "https://twitter.com"


@dataclass(frozen=True)
class Author:
    id: str
    name: str  # display name
    screen_name: str  # handle without @
    protected: bool = False

    @property
    def is_public(self) -> bool:
        return not self.protected

    @property
    def url(self) -> str:
        return f"{TWITTER_URL}/{self.screen_name}"


@dataclass(frozen=True)
class UrlEntity:
    url: str  # t.co short code as it appears in full_text
    expanded_url: str
    indices: tuple[int, int] = (0, 0)


@dataclass(frozen=True)
class VideoVariant:
    url: str
    bitrate: int | None = None
    content_type: str = ""


@dataclass(frozen=True)
class MediaEntity:
    type: str  # "photo", "video", "animated_gif"
    url: str  # t.co short code embedded in full_text
    display_url: str
    media_url_https: str  # still image, embeddable
    variants: tuple[VideoVariant, ...] = ()

    def best_variant(self) -> VideoVariant | None:
        """Highest-bitrate variant. Missing bitrates count as 0, ties keep source order."""
        if not self.variants:
            return None
        return max(self.variants, key=lambda v: v.bitrate or 0)


@dataclass(frozen=True)
class SourceItem:
    """One tweet. Retweets and quote tweets nest a complete SourceItem."""

    id: str
    author: Author
    created_at: datetime
    full_text: str
    in_reply_to_status_id: str | None = None
    in_reply_to_screen_name: str | None = None
    retweeted: "SourceItem | None" = None
    quoted: "SourceItem | None" = None
    urls: tuple[UrlEntity, ...] = ()
    media: tuple[MediaEntity, ...] = ()

    @property
    def url(self) -> str:
        return f"{TWITTER_URL}/{self.author.screen_name}/status/{self.id}"

    @property
    def timestamp_ms(self) -> int:
        return int(self.created_at.timestamp() * 1000)

    @property
    def is_reply(self) -> bool:
        return bool(self.in_reply_to_status_id)

    @property
    def is_public(self) -> bool:
        # A retweet or quote of protected content is not public either.
        if self.quoted is not None and not self.quoted.is_public:
            return False
        if self.retweeted is not None and not self.retweeted.is_public:
            return False
        return self.author.is_public


@dataclass(frozen=True)
class AttachmentInfo:
    name: str
    hash: bytes  # sha512 digest
    size: int


@dataclass(frozen=True)
class RenderedDocument:
    timestamp_ms: int
    body: str  # markdown
    attachments: tuple[AttachmentInfo, ...] = field(default_factory=tuple)

    def serialize(self) -> bytes:
        """Deterministic byte encoding. These are the bytes that get signed."""
        data = {
            "timestamp_ms_utc": self.timestamp_ms,
            "post": {
                "body": self.body,
                "attachments": [
                    {"name": a.name, "hash": a.hash.hex(), "size": a.size}
                    for a in self.attachments
                ],
            },
        }
        return json.dumps(
            data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")
