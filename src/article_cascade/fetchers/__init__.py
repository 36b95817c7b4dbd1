"""Page sources: plain HTTP and a live browser."""

from __future__ import annotations

__all__ = ["HttpFetcher"]

from article_cascade.fetchers.http import HttpFetcher
