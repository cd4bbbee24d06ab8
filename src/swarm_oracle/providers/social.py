"""Social and news feeds: RapidAPI Twitter, RapidAPI Reddit, NewsAPI.

Every provider normalizes its items to ``{"text", "engagement", "created_at"}``
so the collector scores all three the same way.  Without an API key a
provider returns no items rather than calling out.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .base import HttpProvider

logger = logging.getLogger(__name__)


class TwitterProvider(HttpProvider):
    """Tweet search via the ``twitter154`` RapidAPI endpoint."""

    name = "twitter"

    def __init__(
        self,
        api_key: str,
        *,
        host: str = "twitter154.p.rapidapi.com",
        limit: int = 50,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._api_key = api_key
        self._host = host
        self._limit = limit

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        if not self._api_key:
            return []
        data = await self._request_json(
            "GET",
            f"https://{self._host}/search/search",
            params={
                "query": f"{query} crypto cryptocurrency trading",
                "limit": str(self._limit),
                "language": "en",
            },
            headers={"X-RapidAPI-Key": self._api_key, "X-RapidAPI-Host": self._host},
        )
        tweets = data.get("results") or [] if isinstance(data, dict) else []
        return [
            {
                "text": tweet.get("text") or "",
                "engagement": (
                    (tweet.get("favorite_count") or 0)
                    + (tweet.get("retweet_count") or 0)
                    + (tweet.get("reply_count") or 0)
                ),
                "created_at": tweet.get("creation_date") or tweet.get("created_at"),
            }
            for tweet in tweets
            if isinstance(tweet, dict)
        ]


class RedditProvider(HttpProvider):
    """Hot posts of a subreddit via the ``reddit34`` RapidAPI endpoint."""

    name = "reddit"

    def __init__(
        self,
        api_key: str,
        *,
        host: str = "reddit34.p.rapidapi.com",
        limit: int = 50,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._api_key = api_key
        self._host = host
        self._limit = limit

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        if not self._api_key:
            return []
        data = await self._request_json(
            "GET",
            f"https://{self._host}/getSubredditPosts",
            params={"subreddit": query, "sort": "hot", "limit": str(self._limit)},
            headers={"X-RapidAPI-Key": self._api_key, "X-RapidAPI-Host": self._host},
        )
        children = (data.get("data") or {}).get("children") or [] if isinstance(data, dict) else []
        items = []
        for wrapper in children:
            post = wrapper.get("data") if isinstance(wrapper, dict) else None
            if not post:
                continue
            items.append(
                {
                    "text": f"{post.get('title') or ''} {post.get('selftext') or ''}".strip(),
                    "engagement": abs(post.get("score") or 0),
                    "created_at": post.get("created_utc"),
                }
            )
        return items


class NewsApiProvider(HttpProvider):
    """Recent articles from newsapi.org ``/v2/everything``."""

    name = "news"

    def __init__(
        self,
        api_key: str,
        *,
        url: str = "https://newsapi.org/v2/everything",
        page_size: int = 50,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._api_key = api_key
        self._url = url
        self._page_size = page_size

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        if not self._api_key:
            return []
        data = await self._request_json(
            "GET",
            self._url,
            params={
                "q": f"{query} cryptocurrency",
                "language": "en",
                "sortBy": "publishedAt",
                "pageSize": self._page_size,
                "apiKey": self._api_key,
            },
        )
        articles = data.get("articles") or [] if isinstance(data, dict) else []
        return [
            {
                "text": f"{article.get('title') or ''} {article.get('description') or ''}".strip(),
                "engagement": 0,
                "created_at": article.get("publishedAt"),
                "outlet": (article.get("source") or {}).get("name"),
            }
            for article in articles
            if isinstance(article, dict)
        ]
