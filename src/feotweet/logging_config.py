"""Process-wide logging setup. Only the CLI calls this."""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Send feotweet's logs to stderr.

    -v shows debug output (including each HTTP request), -q only warnings
    and errors. Safe to call more than once.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    app_logger = logging.getLogger("feotweet")
    for old in list(app_logger.handlers):
        app_logger.removeHandler(old)
    app_logger.setLevel(level)
    app_logger.addHandler(handler)

    # httpx logs every request at INFO.
    http_level = logging.DEBUG if verbose else logging.WARNING
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(http_level)
