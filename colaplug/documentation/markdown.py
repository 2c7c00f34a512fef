"""Markdown rendering for plugin READMEs."""

from __future__ import annotations

import html
import re
from typing import Optional

import markdown
import structlog

logger = structlog.get_logger(__name__)

MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "nl2br", "sane_lists"]

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_EVENT_HANDLER_QUOTED = re.compile(r"\son\w+\s*=\s*([\"'])[^\"']*\1", re.IGNORECASE)
_EVENT_HANDLER_BARE = re.compile(r"\son\w+\s*=\s*[^\s>]+", re.IGNORECASE)


def escape_html(text: Optional[str]) -> str:
    if not text:
        return ""
    return html.escape(str(text), quote=True).replace("&#x27;", "&#039;")


def render_markdown(text: str) -> str:
    """Render GitHub-flavoured-ish Markdown to HTML.

    Falls back to the escaped source in a ``<pre>`` block if rendering fails.
    """
    try:
        return markdown.markdown(text or "", extensions=MARKDOWN_EXTENSIONS, output_format="html")
    except Exception as e:
        logger.error("Failed to render markdown", error=str(e))
        return f"<pre>{escape_html(text)}</pre>"


def sanitize_html(fragment: str) -> str:
    """Strip script tags and inline event handlers."""
    sanitized = _SCRIPT_TAG.sub("", fragment)
    sanitized = _EVENT_HANDLER_QUOTED.sub("", sanitized)
    return _EVENT_HANDLER_BARE.sub("", sanitized)


def render_markdown_safe(text: str) -> str:
    return sanitize_html(render_markdown(text))

