"""Collect media attachments to publish alongside a rendered tweet.

Downloads are streamed into temp files, hashing as they go, so large videos
never sit in memory. A collector is a scope: use it as a context manager and
every temp file it created is removed on exit, whether or not the body raised.

    with Attachments(http) as attachments:
        html = render_html(item, attachments)
        ...  # publish, upload attachments.attachments
"""

import hashlib
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from typing import BinaryIO
from urllib.parse import urlparse

import httpx

from .models import AttachmentInfo

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """Downloading an attachment returned a non-success response."""

    def __init__(self, message: str, url: str, status_code: int | None = None):
        super().__init__(f"{message}: {url} (status {status_code})")
        self.url = url
        self.status_code = status_code


class AttachmentConflictError(RuntimeError):
    """Two different files were collected under the same name."""


def attachment_name(url: str) -> str:
    """The file part of a URL's path, ignoring any query string."""
    name = PurePosixPath(urlparse(url).path).name
    if not name:
        raise ValueError(f"Cannot derive an attachment name from URL: {url}")
    return name


class Attachment:
    """A single downloaded file, held in a temp file until drop() is called."""

    def __init__(self, name: str, path: Path, hash: bytes, size: int):
        self.name = name
        self.path = path
        self.hash = hash
        self.size = size

    @classmethod
    def from_chunks(cls, name: str, chunks: Iterable[bytes]) -> "Attachment":
        fd, tmp_path = tempfile.mkstemp(prefix="feotweet-")
        sha512 = hashlib.sha512()
        size = 0
        try:
            with os.fdopen(fd, "wb") as f:
                for chunk in chunks:
                    sha512.update(chunk)
                    f.write(chunk)
                    size += len(chunk)
        except BaseException:
            os.unlink(tmp_path)
            raise

        return cls(name, Path(tmp_path), sha512.digest(), size)

    @classmethod
    def from_url(cls, http: httpx.Client, url: str) -> "Attachment":
        """Download an attachment. Its name is the file part of the URL."""
        name = attachment_name(url)
        with http.stream("GET", url) as response:
            if not response.is_success:
                raise FetchError("Non-OK response", url, response.status_code)
            return cls.from_chunks(name, response.iter_bytes())

    @property
    def markdown_path(self) -> str:
        return f"files/{self.name}"

    def info(self) -> AttachmentInfo:
        return AttachmentInfo(name=self.name, hash=self.hash, size=self.size)

    def open(self) -> BinaryIO:
        return open(self.path, "rb")

    def drop(self) -> None:
        self.path.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"Attachment({self.name!r} at {str(self.path)!r}, size={self.size})"


class AttachmentCollector(ABC):
    """Where a tweet's media goes while it is being rendered."""

    @property
    @abstractmethod
    def attachments(self) -> tuple[Attachment, ...]: ...

    @abstractmethod
    def add_or_reference(self, url: str, item_url: str = "") -> str:
        """Collect the file at url. Returns the URL to reference it by."""

    @abstractmethod
    def for_retweet(self) -> "AttachmentCollector":
        """Collector to use for the media of a retweeted tweet."""

    @abstractmethod
    def for_quote(self) -> "AttachmentCollector":
        """Collector to use for the media of a quoted tweet."""

    def infos(self) -> tuple[AttachmentInfo, ...]:
        return tuple(a.info() for a in self.attachments)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class NoOpAttachments(AttachmentCollector):
    """Collects nothing. Media stays referenced at its original URL."""

    @property
    def attachments(self) -> tuple[Attachment, ...]:
        return ()

    def add_or_reference(self, url: str, item_url: str = "") -> str:
        return url

    def for_retweet(self) -> AttachmentCollector:
        return self

    def for_quote(self) -> AttachmentCollector:
        return self


class Attachments(AttachmentCollector):
    """Downloads media and dedupes it by name and content hash."""

    def __init__(self, http: httpx.Client):
        self._http = http
        self._attachments: list[Attachment] = []

    @property
    def attachments(self) -> tuple[Attachment, ...]:
        return tuple(self._attachments)

    def add_or_reference(self, url: str, item_url: str = "") -> str:
        try:
            attachment = Attachment.from_url(self._http, url)
        except FetchError as e:
            if e.status_code == 403:
                # Twitter takes down media that's no longer available.
                # Still link to it, even though it's gone.
                logger.warning(
                    "%s for %s no longer available. Skipping.", url, item_url
                )
                return url
            raise

        return self._add(attachment).markdown_path

    def _add(self, attachment: Attachment) -> Attachment:
        for existing in self._attachments:
            if existing.name != attachment.name:
                continue

            # Only one temp file per distinct attachment.
            attachment.drop()
            if existing.hash == attachment.hash:
                logger.debug("Already collected %s", existing.name)
                return existing
            raise AttachmentConflictError(
                f'Tried to add duplicate file name "{existing.name}" '
                "with different hashes."
            )

        logger.debug("Collected %r", attachment)
        self._attachments.append(attachment)
        return attachment

    # Things get REALLY big if you include all the media someone can
    # retweet, and it isn't theirs to copy. Reference it instead.
    def for_retweet(self) -> AttachmentCollector:
        return NoOpAttachments()

    def for_quote(self) -> AttachmentCollector:
        return NoOpAttachments()

    def close(self) -> None:
        for attachment in self._attachments:
            try:
                attachment.drop()
            except OSError:
                logger.exception("Error dropping %r", attachment)
        self._attachments = []
