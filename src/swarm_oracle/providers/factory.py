"""Map a collector source to its provider.

Sources listed under ``static_items`` are served from canned items, which
lets the swarm run offline; every other source gets its live HTTP provider.
"""

from __future__ import annotations

import os
from typing import assert_never

from swarm_oracle.core.config import ProviderConfig
from swarm_oracle.core.enums import CollectorSource
from swarm_oracle.core.interfaces import IDataProvider

from .chain import JsonRpcChainProvider
from .market import CoinGeckoProvider
from .social import NewsApiProvider, RedditProvider, TwitterProvider
from .static import StaticProvider


def build_provider(source: CollectorSource, config: ProviderConfig) -> IDataProvider:
    """Create the provider for *source*; API keys are read from the env vars named in *config*."""
    if source.value in config.static_items:
        return StaticProvider(source.value, config.static_items[source.value])
    rapidapi_key = os.environ.get(config.rapidapi_key_env, "")
    match source:
        case CollectorSource.TWITTER:
            return TwitterProvider(
                rapidapi_key, host=config.twitter_host, limit=config.page_size, timeout=config.timeout
            )
        case CollectorSource.REDDIT:
            return RedditProvider(
                rapidapi_key, host=config.reddit_host, limit=config.page_size, timeout=config.timeout
            )
        case CollectorSource.NEWS:
            return NewsApiProvider(
                os.environ.get(config.newsapi_key_env, ""),
                url=config.newsapi_url,
                page_size=config.page_size,
                timeout=config.timeout,
            )
        case CollectorSource.ONCHAIN:
            return JsonRpcChainProvider(config.rpcs, timeout=config.timeout)
        case CollectorSource.MARKET:
            return CoinGeckoProvider(base_url=config.coingecko_url, timeout=config.timeout)
        case _:
            assert_never(source)
