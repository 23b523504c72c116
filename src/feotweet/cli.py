"""CLI interface for feotweet.

Commands:
    setup   - Configure Twitter API keys and the content store
    sync    - Copy new tweets into the content store
    example - Show how a single tweet would be rendered
    status  - Show configured timelines and where each one is synced up to
    keygen  - Generate a new store user ID and private key
"""

import re
import sys
from datetime import datetime, timezone
from pathlib import Path

import click

from .config import (
    CONFIG_FILE,
    AppConfig,
    HomeTimelineConfig,
    TwitterKeys,
    config_exists,
    load_config,
    save_config,
)
from .logging_config import setup_logging

# https://twitter.com/jwz/status/1413750203056721927
STATUS_URL_PATTERN = re.compile(
    r"^https://(?:twitter|x)\.com/[^/]+/status/(\d+)/?$", re.IGNORECASE
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors")
@click.option("--config", type=click.Path(), default=None, help="Config file path")
@click.pass_context
def main(ctx, verbose, quiet, config):
    """feotweet — Mirror Twitter timelines into a signed content store."""
    setup_logging(verbose=verbose, quiet=quiet)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else CONFIG_FILE


@main.command()
@click.pass_context
def setup(ctx):
    """Configure Twitter API keys and the content store."""
    config_path = ctx.obj["config_path"]

    if config_exists(config_path) and not click.confirm(
        f"{config_path} already exists. Overwrite it?", default=False
    ):
        click.echo("Setup cancelled.")
        return

    click.echo("feotweet — Setup")
    click.echo("=" * 40)
    click.echo()
    click.echo("You need OAuth 1.0a keys for a Twitter app.")
    click.echo("Get them from the Twitter developer console -> your app -> Keys and tokens.")
    click.echo()

    consumer_key = click.prompt("consumer_key")
    consumer_secret = click.prompt("consumer_secret", hide_input=True)
    access_token_key = click.prompt("access_token_key")
    access_token_secret = click.prompt("access_token_secret", hide_input=True)

    click.echo()
    server = click.prompt("Content store server", default="http://127.0.0.1:8080")

    click.echo()
    click.echo("(Optional) Store identity for your home timeline — press Enter to skip.")
    click.echo("Run 'feotweet keygen' to create one.")
    user_id = click.prompt("user_id", default="", show_default=False)

    home_timeline = None
    if user_id:
        private_key = click.prompt("private_key", hide_input=True)
        home_timeline = HomeTimelineConfig(user_id=user_id, private_key=private_key)

    config = AppConfig(
        twitter=TwitterKeys(
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            access_token_key=access_token_key,
            access_token_secret=access_token_secret,
        ),
        store_server=server,
        home_timeline=home_timeline,
    )

    save_config(config, config_path)
    click.echo(f"\nConfig saved to {config_path}")
    if home_timeline is None:
        click.echo("Add [home_timeline] or [[user_timelines]] to it before syncing.")
    else:
        click.echo("Run 'feotweet sync' to copy your timeline.")


@main.command()
@click.option(
    "--max-tweets",
    type=int,
    default=100,
    show_default=True,
    help="Max # of tweets to read from the home timeline",
)
@click.pass_context
def sync(ctx, max_tweets):
    """Copy new tweets into the content store."""
    config = _load_or_exit(ctx.obj["config_path"])

    # Lazy imports so --help stays fast
    import httpx

    from .client import TwitterClient
    from .store import StoreClient
    from .sync import SyncEngine

    try:
        timelines = config.timelines(home_max_items=max_tweets)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    keys = config.twitter
    with TwitterClient(
        keys.consumer_key,
        keys.consumer_secret,
        keys.access_token_key,
        keys.access_token_secret,
    ) as twitter:
        with StoreClient(config.store_server) as store:
            with httpx.Client(timeout=30.0, follow_redirects=True) as http:
                engine = SyncEngine(twitter, store, http)
                failures = engine.sync_all(timelines)

    if failures:
        for timeline, error in failures:
            click.echo(f"Error syncing {timeline.label}: {error}", err=True)
        sys.exit(1)

    click.echo(f"Synced {len(timelines)} timeline(s).")


@main.command()
@click.argument("url")
@click.pass_context
def example(ctx, url):
    """Show how the tweet at URL would be rendered.

    Media is referenced, never downloaded.
    """
    import json

    match = STATUS_URL_PATTERN.match(url)
    if not match:
        click.echo(
            f"Error: {url} does not appear to be a valid status URL.", err=True
        )
        sys.exit(1)

    config = _load_or_exit(ctx.obj["config_path"])

    from .attachments import NoOpAttachments
    from .client import TwitterClient
    from .markdown import html_to_markdown
    from .parser import parse_item
    from .render import render_html

    keys = config.twitter
    try:
        with TwitterClient(
            keys.consumer_key,
            keys.consumer_secret,
            keys.access_token_key,
            keys.access_token_secret,
        ) as client:
            status_json = client.get_status(match.group(1))

        item = parse_item(status_json)
        with NoOpAttachments() as attachments:
            markdown = html_to_markdown(render_html(item, attachments))
    except RuntimeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("This JSON:")
    click.echo(json.dumps(status_json, indent=2, ensure_ascii=False))
    click.echo()
    click.echo("Would produce this Markdown:")
    click.echo()
    click.echo(markdown)


@main.command()
@click.pass_context
def status(ctx):
    """Show configured timelines and the newest post stored for each."""
    config_path = ctx.obj["config_path"]
    has_config = config_exists(config_path)

    click.echo("feotweet — Status")
    click.echo("=" * 40)
    click.echo(f"Config: {'Found' if has_config else 'Not configured'} ({config_path})")

    if not has_config:
        click.echo("\nRun 'feotweet setup' to get started.")
        return

    config = _load_or_exit(config_path)

    import httpx

    from .store import StoreClient

    click.echo(f"Store: {config.store_server}")
    with StoreClient(config.store_server) as store:
        for timeline in config.timelines(home_max_items=0):
            try:
                watermark = store.latest_post_timestamp(timeline.user_id)
            except (RuntimeError, httpx.HTTPError) as e:
                click.echo(f"{timeline.label}: unavailable ({e})")
                continue

            if watermark is None:
                click.echo(f"{timeline.label}: nothing synced yet")
            else:
                synced = datetime.fromtimestamp(watermark / 1000, tz=timezone.utc)
                click.echo(
                    f"{timeline.label}: synced through "
                    f"{synced.strftime('%Y-%m-%d %H:%M UTC')}"
                )


@main.command()
def keygen():
    """Generate a new store user ID and private key."""
    from .store import Signer

    signer = Signer.generate()
    click.echo(f"user_id = \"{signer.user_id}\"")
    click.echo(f"private_key = \"{signer.private_key_hex}\"")
    click.echo()
    click.echo("Keep the private key secret. Anyone with it can post as this user.")


def _load_or_exit(config_path: Path) -> AppConfig:
    if not config_exists(config_path):
        click.echo(
            "Error: No config found. Run 'feotweet setup' first.",
            err=True,
        )
        sys.exit(1)
    try:
        return load_config(config_path)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
