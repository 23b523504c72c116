"""Incrementally mirror Twitter timelines into the content store.

For each destination identity:
  1. Read the watermark: the timestamp of the newest post already in the store.
  2. Pull tweets newest-first until we reach the watermark or the cap.
  3. Publish them oldest-first, one at a time.

Publishing oldest-first means a run that dies partway through leaves the
store's newest post at the end of a contiguous prefix, so the next run's
watermark neither re-publishes nor skips anything. For the same reason,
publishing within one identity must stay sequential.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import httpx

from .attachments import AttachmentCollector, Attachments, NoOpAttachments
from .client import TwitterClient
from .markdown import html_to_markdown
from .models import SourceItem
from .render import to_document
from .store import Signer, StoreClient

logger = logging.getLogger(__name__)

HOME_TIMELINE_MAX_ITEMS = 100

# The user_timeline endpoint only reaches back 3200 tweets, and anything past
# that can never be fetched again, so always take everything it offers.
USER_TIMELINE_MAX_ITEMS = 5000


class SyncError(RuntimeError):
    """Publishing one tweet failed. Chained to the underlying error."""


@dataclass(frozen=True)
class Timeline:
    """One upstream timeline and the store identity it is mirrored to."""

    user_id: str
    signer: Signer
    max_items: int
    screen_name: str | None = None  # None: the authenticated home timeline
    copy_attachments: bool = False
    skip_replies: bool = False
    skip_retweets: bool = False
    skip_authors: frozenset[str] = frozenset()  # lowercase screen names

    @property
    def label(self) -> str:
        if self.screen_name is None:
            return "home timeline"
        return f"@{self.screen_name}"


class ThrottledLogger:
    """Logs progress at INFO at most once per interval."""

    def __init__(self, log: logging.Logger, interval: float = 5.0):
        self._log = log
        self._interval = interval
        self._last = time.monotonic()

    def info(self, msg: str, *args) -> None:
        now = time.monotonic()
        if now - self._last <= self._interval:
            return
        self._log.info(msg, *args)
        self._last = now


def sort_by_timestamp(items: Iterable[SourceItem]) -> list[SourceItem]:
    return sorted(items, key=lambda item: item.timestamp_ms)


def collect_new_items(
    stream: Iterable[SourceItem],
    watermark: int | None,
    max_items: int,
    skip_authors: frozenset[str] = frozenset(),
) -> list[SourceItem]:
    """Take tweets from a newest-first stream until the watermark or the cap.

    Non-public tweets (including retweets/quotes of non-public tweets) and
    tweets by skipped authors are left out. The first tweet at or before the
    watermark ends the scan: everything after it is older still.
    """
    new_items: list[SourceItem] = []
    if max_items <= 0:
        return new_items

    for item in stream:
        if not item.is_public:
            logger.info("Skipping private tweet: %s", item.url)
            continue

        if item.author.screen_name.lower() in skip_authors:
            logger.debug("Skipping tweet by @%s: %s", item.author.screen_name, item.url)
            continue

        if watermark is not None and item.timestamp_ms <= watermark:
            break

        new_items.append(item)
        if len(new_items) >= max_items:
            logger.info("Reached max of %d tweets. Stopping.", max_items)
            break

    return new_items


class SyncEngine:
    def __init__(
        self,
        twitter: TwitterClient,
        store: StoreClient,
        http: httpx.Client,
        to_markdown: Callable[[str], str] = html_to_markdown,
    ):
        self._twitter = twitter
        self._store = store
        self._http = http  # for attachment downloads
        self._to_markdown = to_markdown

    def sync_all(self, timelines: Iterable[Timeline]) -> list[tuple[Timeline, Exception]]:
        """Sync each timeline independently. Returns the ones that failed."""
        failures: list[tuple[Timeline, Exception]] = []
        for timeline in timelines:
            try:
                self.sync_timeline(timeline)
            except Exception as e:
                logger.error("Sync failed for %s: %s", timeline.label, e)
                logger.debug("Traceback for %s", timeline.label, exc_info=True)
                failures.append((timeline, e))
        return failures

    def sync_timeline(self, timeline: Timeline) -> int:
        """Publish a timeline's new tweets. Returns how many were published."""
        logger.info("Syncing %s", timeline.label)

        watermark = self._store.latest_post_timestamp(timeline.user_id)
        if watermark is None:
            logger.info(
                "No previous posts for %s. Copying up to %d tweets.",
                timeline.label,
                timeline.max_items,
            )
        else:
            logger.debug("Watermark for %s: %d", timeline.label, watermark)

        new_items = collect_new_items(
            self._stream(timeline),
            watermark,
            timeline.max_items,
            timeline.skip_authors,
        )
        logger.info("Found %d new tweets for %s", len(new_items), timeline.label)

        new_items = sort_by_timestamp(new_items)
        status = ThrottledLogger(logger)
        for index, item in enumerate(new_items, start=1):
            status.info("Copying tweet %d of %d", index, len(new_items))
            try:
                self.publish_item(timeline, item)
            except Exception as e:
                raise SyncError(f"While copying tweet: {item.url}\n{e}") from e

        return len(new_items)

    def publish_item(self, timeline: Timeline, item: SourceItem) -> None:
        """Render, sign, and store one tweet plus any attachments it collected."""
        with self._collector(timeline) as attachments:
            document = to_document(item, attachments, self._to_markdown)
            data = document.serialize()
            signature = timeline.signer.sign(data)

            logger.debug("Copying tweet: %s", item.url)
            self._store.put_item(timeline.user_id, signature, data)

            for attachment in attachments.attachments:
                logger.debug(
                    "PUT-ting file: %s size: %d", attachment.name, attachment.size
                )
                with attachment.open() as f:
                    self._store.put_attachment(
                        timeline.user_id,
                        signature,
                        attachment.name,
                        attachment.size,
                        f,
                    )

    def _collector(self, timeline: Timeline) -> AttachmentCollector:
        if timeline.copy_attachments:
            return Attachments(self._http)
        return NoOpAttachments()

    def _stream(self, timeline: Timeline) -> Iterable[SourceItem]:
        if timeline.screen_name is None:
            return self._twitter.home_timeline()
        return self._twitter.user_timeline(
            timeline.screen_name,
            skip_replies=timeline.skip_replies,
            skip_retweets=timeline.skip_retweets,
        )
