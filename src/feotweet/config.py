"""Configuration loading and saving.

Config file location: ~/.config/feotweet/config.toml

Schema:
    [twitter]               # from the Twitter developer console
    consumer_key = "..."
    consumer_secret = "..."
    access_token_key = "..."
    access_token_secret = "..."

    [store]
    server = "http://127.0.0.1:8080"

    [home_timeline]         # optional: mirror the home feed
    user_id = "..."         # hex public key
    private_key = "..."     # hex seed for user_id
    skip_authors = []

    [[user_timelines]]      # optional, repeatable: mirror one user's tweets
    screen_name = "..."
    user_id = "..."
    private_key = "..."
    copy_attachments = false
    skip_replies = false
    skip_retweets = false
    skip_authors = []
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import tomli_w

from .store import Signer
from .sync import USER_TIMELINE_MAX_ITEMS, Timeline

CONFIG_DIR = Path.home() / ".config" / "feotweet"
CONFIG_FILE = CONFIG_DIR / "config.toml"


@dataclass
class TwitterKeys:
    consumer_key: str
    consumer_secret: str
    access_token_key: str
    access_token_secret: str


@dataclass
class HomeTimelineConfig:
    user_id: str
    private_key: str
    skip_authors: list[str] = field(default_factory=list)


@dataclass
class UserTimelineConfig:
    screen_name: str
    user_id: str
    private_key: str
    copy_attachments: bool = False
    skip_replies: bool = False
    skip_retweets: bool = False
    skip_authors: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    twitter: TwitterKeys
    store_server: str = "http://127.0.0.1:8080"
    home_timeline: HomeTimelineConfig | None = None
    user_timelines: list[UserTimelineConfig] = field(default_factory=list)

    def timelines(self, home_max_items: int) -> list[Timeline]:
        """Sync targets: the home timeline first, then each user timeline."""
        timelines: list[Timeline] = []
        if self.home_timeline:
            ht = self.home_timeline
            timelines.append(
                Timeline(
                    user_id=ht.user_id,
                    signer=Signer.from_hex(ht.private_key),
                    max_items=home_max_items,
                    skip_authors=_lowered(ht.skip_authors),
                )
            )
        for ut in self.user_timelines:
            timelines.append(
                Timeline(
                    user_id=ut.user_id,
                    signer=Signer.from_hex(ut.private_key),
                    max_items=USER_TIMELINE_MAX_ITEMS,
                    screen_name=ut.screen_name,
                    copy_attachments=ut.copy_attachments,
                    skip_replies=ut.skip_replies,
                    skip_retweets=ut.skip_retweets,
                    skip_authors=_lowered(ut.skip_authors),
                )
            )
        return timelines


def load_config(config_path: Path = CONFIG_FILE) -> AppConfig:
    """Load and validate config from TOML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    twitter = _require_section(data, "twitter")
    store = _require_section(data, "store")

    config = AppConfig(
        twitter=TwitterKeys(
            consumer_key=_require_str(twitter, "twitter.consumer_key"),
            consumer_secret=_require_str(twitter, "twitter.consumer_secret"),
            access_token_key=_require_str(twitter, "twitter.access_token_key"),
            access_token_secret=_require_str(twitter, "twitter.access_token_secret"),
        ),
        store_server=_require_str(store, "store.server"),
    )

    if "home_timeline" in data:
        ht = _require_section(data, "home_timeline")
        user_id = _require_str(ht, "home_timeline.user_id")
        config.home_timeline = HomeTimelineConfig(
            user_id=user_id,
            private_key=_require_private_key(ht, "home_timeline.private_key", user_id),
            skip_authors=_optional_str_list(ht, "home_timeline.skip_authors"),
        )

    timelines = data.get("user_timelines", [])
    if not isinstance(timelines, list):
        raise ValueError("Config error: user_timelines must be an array of tables")
    for i, ut in enumerate(timelines):
        prefix = f"user_timelines[{i}]"
        if not isinstance(ut, dict):
            raise ValueError(f"Config error: {prefix} must be a table")
        user_id = _require_str(ut, f"{prefix}.user_id")
        config.user_timelines.append(
            UserTimelineConfig(
                screen_name=_require_str(ut, f"{prefix}.screen_name"),
                user_id=user_id,
                private_key=_require_private_key(ut, f"{prefix}.private_key", user_id),
                copy_attachments=_optional_bool(ut, f"{prefix}.copy_attachments"),
                skip_replies=_optional_bool(ut, f"{prefix}.skip_replies"),
                skip_retweets=_optional_bool(ut, f"{prefix}.skip_retweets"),
                skip_authors=_optional_str_list(ut, f"{prefix}.skip_authors"),
            )
        )

    # Two timelines writing to one user ID would clobber each other's watermark.
    seen: set[str] = set()
    user_ids = [ut.user_id for ut in config.user_timelines]
    if config.home_timeline:
        user_ids.insert(0, config.home_timeline.user_id)
    for user_id in user_ids:
        if user_id.lower() in seen:
            raise ValueError(
                f"Config error: user_id {user_id} is used more than once"
            )
        seen.add(user_id.lower())

    if not config.home_timeline and not config.user_timelines:
        raise ValueError(
            "Config error: either home_timeline or user_timelines must be "
            "defined, or there's nothing to do"
        )

    return config


def save_config(config: AppConfig, config_path: Path = CONFIG_FILE) -> None:
    """Write config to TOML file with restricted permissions."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict = {
        "twitter": {
            "consumer_key": config.twitter.consumer_key,
            "consumer_secret": config.twitter.consumer_secret,
            "access_token_key": config.twitter.access_token_key,
            "access_token_secret": config.twitter.access_token_secret,
        },
        "store": {
            "server": config.store_server,
        },
    }

    if config.home_timeline:
        data["home_timeline"] = {
            "user_id": config.home_timeline.user_id,
            "private_key": config.home_timeline.private_key,
            "skip_authors": config.home_timeline.skip_authors,
        }

    if config.user_timelines:
        data["user_timelines"] = [
            {
                "screen_name": ut.screen_name,
                "user_id": ut.user_id,
                "private_key": ut.private_key,
                "copy_attachments": ut.copy_attachments,
                "skip_replies": ut.skip_replies,
                "skip_retweets": ut.skip_retweets,
                "skip_authors": ut.skip_authors,
            }
            for ut in config.user_timelines
        ]

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

    # Contains API secrets and private keys.
    os.chmod(config_path, 0o600)


def config_exists(config_path: Path = CONFIG_FILE) -> bool:
    """Check if config file exists."""
    return config_path.exists()


def _lowered(names: list[str]) -> frozenset[str]:
    return frozenset(name.lstrip("@").lower() for name in names)


def _require_section(data: dict, name: str) -> dict:
    value = data.get(name)
    if not isinstance(value, dict):
        raise ValueError(
            f"Config error: required a section called [{name}], "
            f"but found {type(value).__name__}"
        )
    return value


def _require_str(section: dict, name: str) -> str:
    value = section.get(name.rsplit(".", 1)[-1])
    if isinstance(value, str) and value:
        return value
    raise ValueError(
        f'Config error: expected "{name}" to be a string, '
        f"but was {type(value).__name__}"
    )


def _require_private_key(section: dict, name: str, user_id: str) -> str:
    private_key = _require_str(section, name)
    try:
        signer = Signer.from_hex(private_key)
    except ValueError as e:
        raise ValueError(f"Config error: could not parse {name}: {e}") from e
    if signer.user_id != user_id.lower():
        raise ValueError(
            f"Config error: {name} does not belong to user_id {user_id}"
        )
    return private_key


def _optional_bool(section: dict, name: str, default: bool = False) -> bool:
    value = section.get(name.rsplit(".", 1)[-1], default)
    if isinstance(value, bool):
        return value
    raise ValueError(
        f'Config error: expected "{name}" to be a boolean, '
        f"but was {type(value).__name__}"
    )


def _optional_str_list(section: dict, name: str) -> list[str]:
    value = section.get(name.rsplit(".", 1)[-1], [])
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError(f'Config error: expected "{name}" to be a list of strings')
