"""Shared test fixtures."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from feotweet.models import Author, SourceItem
from feotweet.parser import parse_items
from feotweet.store import Signer

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def home_timeline_page() -> list[dict]:
    """Load the sample home_timeline.json page (newest first)."""
    with open(FIXTURES_DIR / "home_timeline.json") as f:
        return json.load(f)


@pytest.fixture
def sample_items(home_timeline_page) -> list[SourceItem]:
    return parse_items(home_timeline_page)


@pytest.fixture
def make_status():
    """Factory for minimal v1.1 status dicts."""

    def _make_status(
        id_str: str = "0000",
        full_text: str = "Hello",
        created_at: str = "Sat Jan 01 00:00:00 +0000 2000",
        screen_name: str = "TestUser",
        name: str = "Test user",
        protected: bool = False,
        **extra,
    ) -> dict:
        status = {
            "id_str": id_str,
            "created_at": created_at,
            "full_text": full_text,
            "is_quote_status": False,
            "entities": {"urls": []},
            "user": {
                "id_str": "1234",
                "name": name,
                "screen_name": screen_name,
                "protected": protected,
            },
        }
        status.update(extra)
        return status

    return _make_status


@pytest.fixture
def make_item():
    """Factory for SourceItems with a given ID, timestamp, and author."""

    def _make_item(
        id: str,
        seconds: int,
        screen_name: str = "someone",
        protected: bool = False,
        **extra,
    ) -> SourceItem:
        return SourceItem(
            id=id,
            author=Author(
                id="1", name=screen_name, screen_name=screen_name, protected=protected
            ),
            created_at=datetime.fromtimestamp(seconds, tz=timezone.utc),
            full_text=f"tweet {id}",
            **extra,
        )

    return _make_item


@pytest.fixture
def signer() -> Signer:
    return Signer.from_hex("01" * 32)
