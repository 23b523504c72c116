"""Convert rendered tweet HTML to the markdown body of a published document."""

import re

from markdownify import ATX, MarkdownConverter

_BLANK_LINE_RE = re.compile(r"\n{3,}")

_converter = MarkdownConverter(
    heading_style=ATX,
    bullets="-",
    escape_asterisks=True,
    escape_underscores=True,
)


def html_to_markdown(html: str) -> str:
    """Convert an HTML fragment to markdown.

    Deterministic: the same HTML always yields the same markdown, so
    re-rendering a tweet yields the same signed bytes.
    """
    markdown = _converter.convert(html)
    return _BLANK_LINE_RE.sub("\n\n", markdown).strip()
