from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from typing import List, Literal, Optional

import httpx
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from economist_ai.exception import ErrorType
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.tools.tool_response import (
    create_error_response,
    create_success_response,
    handle_tool_validation_error,
    validation_error_response,
)

MARKETAUX_URL = "https://api.marketaux.com/v1/news/all"
FINNHUB_URL = "https://finnhub.io/api/v1/market-news"


class EconomicNewsInput(BaseModel):
    entity: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=50,
        description="Stock symbol or company name to filter news (e.g. AAPL, Tesla)",
    )
    min_sentiment: Optional[float] = Field(
        default=None,
        ge=-1,
        le=1,
        description="Minimum sentiment score from -1 (very negative) to 1 (very positive)",
    )
    category: Optional[Literal["general", "forex", "crypto", "merger"]] = Field(
        default=None, description="News category to filter by"
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def map_marketaux_article(article: dict) -> dict:
    return {
        "title": article.get("title") or "No title available",
        "description": article.get("description") or None,
        "url": article.get("url") or "#",
        "date": article.get("published_at") or _now_iso(),
        "source": article.get("source") or "Marketaux",
        "imageUrl": article.get("image_url") or None,
        "sentiment": article.get("sentiment_score"),
    }


def map_finnhub_article(article: dict) -> dict:
    ts = article.get("datetime")
    return {
        "title": article.get("headline") or "No title available",
        "description": article.get("summary") or None,
        "url": article.get("url") or "#",
        "date": (
            datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")
            if ts
            else _now_iso()
        ),
        "source": article.get("source") or "Finnhub",
        "imageUrl": article.get("image") or None,
        "sentiment": None,
    }


def _map_articles(items: list, mapper, source: str) -> List[dict]:
    articles = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            articles.append(mapper(item))
        except (TypeError, ValueError, OverflowError, OSError) as e:
            # skip the bad item, keep the rest of the feed
            log.warning("Skipping malformed %s article | error=%s", source, str(e))
    return articles


class EconomicNewsClient:
    """
    Market news from Marketaux and Finnhub, fetched concurrently.

    Each source degrades to an empty list on its own (missing token, HTTP
    error, malformed body) so one provider outage never hides the other.
    """

    def __init__(
        self,
        marketaux_token: Optional[str] = None,
        finnhub_token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        page_size: int = 20,
    ):
        self.marketaux_token = (
            marketaux_token if marketaux_token is not None else os.getenv("MARKETAUX_API_TOKEN")
        )
        self.finnhub_token = (
            finnhub_token if finnhub_token is not None else os.getenv("FINNHUB_API_TOKEN")
        )
        self.http_client = http_client
        self.timeout = timeout
        self.page_size = page_size

        if not self.marketaux_token:
            log.warning("MARKETAUX_API_TOKEN is not set - Marketaux news will be unavailable")
        if not self.finnhub_token:
            log.warning("FINNHUB_API_TOKEN is not set - Finnhub news will be unavailable")

    async def _get_json(self, url: str, params: dict):
        headers = {"Accept": "application/json"}
        if self.http_client is not None:
            resp = await self.http_client.get(url, params=params, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params, headers=headers)
        resp.raise_for_status()
        return resp.json()

    async def _fetch_marketaux(self, entity: Optional[str], min_sentiment: Optional[float]) -> List[dict]:
        if not self.marketaux_token:
            return []
        params = {"api_token": self.marketaux_token, "limit": str(self.page_size)}
        if entity:
            params["symbols"] = entity
        if min_sentiment is not None:
            params["sentiment_gte"] = str(min_sentiment)
        try:
            body = await self._get_json(MARKETAUX_URL, params)
        except (httpx.HTTPError, ValueError) as e:
            log.error("Error fetching news from Marketaux | error=%s", str(e))
            return []
        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            log.warning("Invalid response structure from Marketaux API")
            return []
        return _map_articles(body["data"], map_marketaux_article, "Marketaux")

    async def _fetch_finnhub(self, category: Optional[str]) -> List[dict]:
        if not self.finnhub_token:
            return []
        params = {"category": category or "general", "token": self.finnhub_token}
        try:
            body = await self._get_json(FINNHUB_URL, params)
        except (httpx.HTTPError, ValueError) as e:
            log.error("Error fetching news from Finnhub | error=%s", str(e))
            return []
        if not isinstance(body, list):
            log.warning("Invalid response structure from Finnhub API")
            return []
        return _map_articles(body, map_finnhub_article, "Finnhub")

    async def fetch_news(
        self,
        entity: Optional[str] = None,
        min_sentiment: Optional[float] = None,
        category: Optional[str] = None,
    ) -> dict:
        marketaux, finnhub = await asyncio.gather(
            self._fetch_marketaux(entity, min_sentiment),
            self._fetch_finnhub(category),
        )
        log.info("News fetched | marketaux=%d | finnhub=%d", len(marketaux), len(finnhub))
        return {"marketaux": marketaux, "finnhub": finnhub}

    async def run_tool(
        self,
        entity: Optional[str] = None,
        min_sentiment: Optional[float] = None,
        category: Optional[str] = None,
    ) -> dict:
        try:
            args = EconomicNewsInput(entity=entity, min_sentiment=min_sentiment, category=category)
        except PydanticValidationError as e:
            return validation_error_response(e, "Please try again with different parameters.")

        try:
            result = await self.fetch_news(args.entity, args.min_sentiment, args.category)
        except Exception as e:
            log.exception("Economic news tool failed")
            return create_error_response(
                str(e) or "Unknown error occurred",
                ErrorType.FETCH_ERROR,
                "Failed to fetch economic news from APIs. This could be due to network issues, API rate limits, or invalid parameters.",
                "Please try again with different parameters or check your internet connection.",
            )

        return create_success_response(
            {
                **result,
                "metadata": {
                    "totalArticles": len(result["marketaux"]) + len(result["finnhub"]),
                    "marketauxCount": len(result["marketaux"]),
                    "finnhubCount": len(result["finnhub"]),
                    "filters": {
                        "entity": args.entity or "all",
                        "minSentiment": args.min_sentiment if args.min_sentiment is not None else "any",
                        "category": args.category or "general",
                    },
                },
            }
        )


def build_economic_news_tool(client: EconomicNewsClient) -> StructuredTool:
    return StructuredTool.from_function(
        coroutine=client.run_tool,
        name="economic_news_tool",
        description=(
            "Fetch the latest economic and financial news from Marketaux and Finnhub, "
            "with sentiment scores where available."
        ),
        args_schema=EconomicNewsInput,
        handle_validation_error=handle_tool_validation_error,
    )
