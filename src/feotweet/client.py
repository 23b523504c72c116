"""Twitter v1.1 REST API client for reading timelines.

Authentication is OAuth 1.0a user context: the consumer key/secret and access
token/secret all come from the Twitter developer console.

Timelines are exposed as lazy generators of SourceItem, newest first. Paging
uses max_id, which Twitter treats as inclusive, so the boundary tweet comes
back at the top of every following page and has to be skipped.
"""

import logging
import time
from collections.abc import Iterator

import httpx
from authlib.integrations.httpx_client import OAuth1Auth

from .models import SourceItem
from .parser import parse_item

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.twitter.com"
HOME_TIMELINE_PATH = "/1.1/statuses/home_timeline.json"
USER_TIMELINE_PATH = "/1.1/statuses/user_timeline.json"
SHOW_STATUS_PATH = "/1.1/statuses/show.json"

# Max page size the timeline endpoints accept. We're limited on requests,
# not on tweets per request.
PAGE_SIZE = 200

# Added to the server's reset time to absorb clock drift.
RATE_LIMIT_SKEW_SECONDS = 5.0
# Floor for a reset time that is already in the past.
MIN_RATE_LIMIT_WAIT_SECONDS = 1.0


class TwitterAPIError(RuntimeError):
    """Non-retriable error response from the Twitter API."""

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: int | None = None,
        body: str = "",
    ):
        details = message
        if url:
            details += f"\n  request: {url}"
        if status_code is not None:
            details += f"\n  status: {status_code}"
        if body:
            details += f"\n  body: {body[:500]}"
        super().__init__(details)
        self.url = url
        self.status_code = status_code
        self.body = body


class TwitterClient:
    """Client for the Twitter v1.1 statuses API using OAuth 1.0a."""

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        access_token_key: str,
        access_token_secret: str,
        base_url: str = API_BASE_URL,
        page_size: int = PAGE_SIZE,
    ):
        self._base_url = base_url.rstrip("/")
        self._page_size = page_size
        self._client = httpx.Client(
            auth=OAuth1Auth(
                client_id=consumer_key,
                client_secret=consumer_secret,
                token=access_token_key,
                token_secret=access_token_secret,
            ),
            timeout=30.0,
            follow_redirects=True,
        )

    def home_timeline(self) -> Iterator[SourceItem]:
        """Tweets from the authenticated user's home feed, newest first."""
        return self._paginate(HOME_TIMELINE_PATH, {})

    def user_timeline(
        self,
        screen_name: str,
        skip_replies: bool = False,
        skip_retweets: bool = False,
    ) -> Iterator[SourceItem]:
        """Tweets by a single user, newest first."""
        params = {"screen_name": screen_name}
        if skip_replies:
            params["exclude_replies"] = "true"
        if skip_retweets:
            params["include_rts"] = "false"
        return self._paginate(USER_TIMELINE_PATH, params)

    def fetch_page(
        self, path: str, params: dict, max_id: str | None = None
    ) -> list[dict]:
        """Fetch a single page of raw statuses."""
        params = {
            **params,
            "tweet_mode": "extended",
            "count": str(self._page_size),
        }
        if max_id:
            params["max_id"] = max_id

        response = self._get(path, params)
        data = response.json()
        if not isinstance(data, list):
            raise TwitterAPIError(
                "Expected a list of statuses",
                url=str(response.url),
                status_code=response.status_code,
                body=response.text,
            )
        return data

    def get_status(self, status_id: str) -> dict:
        """Fetch a single raw status by ID."""
        params = {
            "id": status_id,
            "include_entities": "true",
            # Undocumented for this endpoint, but honoured.
            "tweet_mode": "extended",
        }
        response = self._get(SHOW_STATUS_PATH, params)
        data = response.json()
        if "full_text" not in data:
            raise TwitterAPIError(
                "tweet_mode=extended seems to have stopped working for the "
                "status endpoint",
                url=str(response.url),
                status_code=response.status_code,
                body=response.text,
            )
        return data

    def _paginate(self, path: str, params: dict) -> Iterator[SourceItem]:
        max_id: str | None = None
        page_num = 0

        while True:
            page_num += 1
            logger.debug("Fetching %s page %d (max_id=%s)", path, page_num, max_id)
            page = self.fetch_page(path, params, max_id)

            new_items = 0
            for status in page:
                if max_id is not None and status.get("id_str") == max_id:
                    continue
                new_items += 1
                yield parse_item(status)

            if new_items == 0:
                logger.debug("No more statuses. Pagination complete.")
                return

            max_id = page[-1]["id_str"]

    def _get(self, path: str, params: dict) -> httpx.Response:
        url = f"{self._base_url}{path}"

        while True:
            response = self._client.get(url, params=params)

            if response.status_code == 429:
                wait_seconds = self._rate_limit_wait(response)
                logger.warning(
                    "Rate limited by Twitter. Waiting %.0fs for the limit to reset.",
                    wait_seconds,
                )
                time.sleep(wait_seconds)
                continue

            if response.status_code == 401:
                raise TwitterAPIError(
                    "Authentication failed. Check the twitter keys in your config.",
                    url=str(response.url),
                    status_code=response.status_code,
                    body=response.text,
                )

            if not response.is_success:
                raise TwitterAPIError(
                    "Non-OK response from Twitter API",
                    url=str(response.url),
                    status_code=response.status_code,
                    body=response.text,
                )

            return response

    @staticmethod
    def _rate_limit_wait(response: httpx.Response) -> float:
        """Seconds to wait before retrying a 429 response."""
        # ex:
        #   x-rate-limit-limit: 15
        #   x-rate-limit-remaining: 0
        #   x-rate-limit-reset: 1625886502
        remaining = _int_header(response, "x-rate-limit-remaining")
        if remaining > 0:
            raise TwitterAPIError(
                f"Got a rate limit response, but {remaining} calls remain",
                url=str(response.url),
                status_code=response.status_code,
                body=response.text,
            )

        reset_epoch = _int_header(response, "x-rate-limit-reset")
        wait_seconds = reset_epoch - time.time() + RATE_LIMIT_SKEW_SECONDS
        return max(wait_seconds, MIN_RATE_LIMIT_WAIT_SECONDS)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def _int_header(response: httpx.Response, name: str) -> int:
    value = response.headers.get(name)
    if value is None:
        raise TwitterAPIError(
            f"Expected HTTP header {name}",
            url=str(response.url),
            status_code=response.status_code,
            body=response.text,
        )
    try:
        return int(value)
    except ValueError as e:
        raise TwitterAPIError(
            f"Could not parse header {name}: {value!r}",
            url=str(response.url),
            status_code=response.status_code,
        ) from e
