"""Logging helper utilities for consistent request and cache reporting."""

import json
import logging
from typing import Any

import click

logger = logging.getLogger(__name__)


def pretty_json(data: Any) -> str:
    """Indented JSON for log output; falls back to repr for non-serializable data."""
    try:
        return json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(data)


def format_summary(
    requested: int,
    cached: int,
    fetched: int,
    missing: int = 0,
    requests_made: int = 0,
    item_name: str = "items"
) -> str:
    """Format a batch cache refresh summary line with colored counts.

    Args:
        requested: Number of unique ids asked for
        cached: Ids already present in the cache
        fetched: Objects fetched and stored
        missing: Ids Spotify returned null for
        requests_made: Number of HTTP requests issued
        item_name: Name of items (e.g., "tracks", "artists")

    Returns:
        Formatted summary string with colors
    """
    parts = [
        f"{item_name}:",
        click.style(f'{requested} requested', fg='cyan'),
        click.style(f'{cached} cached', fg='yellow'),
        click.style(f'{fetched} fetched', fg='green'),
    ]

    if missing > 0:
        parts.append(click.style(f'{missing} missing', fg='red'))

    if requests_made > 0:
        parts.append(f"in {requests_made} request(s)")

    return " ".join(parts)


__all__ = ["pretty_json", "format_summary"]
