from __future__ import annotations

import os
from datetime import date
from typing import Optional
from urllib.parse import quote

import httpx
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from economist_ai.exception import ErrorType
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.tools.tool_response import (
    CommonErrors,
    create_error_response,
    create_success_response,
    handle_tool_validation_error,
    validation_error_response,
)

TRADING_ECONOMICS_BASE = "https://api.tradingeconomics.com"


class EconomicIndicatorInput(BaseModel):
    indicator: str = Field(
        min_length=2,
        max_length=100,
        description="Economic indicator name (e.g. 'GDP', 'Inflation Rate', 'Unemployment Rate')",
    )
    country_code: str = Field(
        min_length=2,
        max_length=3,
        description="ISO 2 or 3 letter country code, e.g. 'US', 'UK', 'DE'",
    )
    year: Optional[int] = Field(
        default=None, description="Year for historical data (defaults to latest available)"
    )

    @field_validator("year")
    @classmethod
    def _year_in_range(cls, v):
        if v is not None and not 1900 <= v <= date.today().year:
            raise ValueError(f"year must be between 1900 and {date.today().year}")
        return v


class EconomicIndicatorClient:
    """Historical indicator series from the Trading Economics API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        base_url: str = TRADING_ECONOMICS_BASE,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("TRADINGECONOMICS_KEY")
        self.http_client = http_client
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    async def _get(self, url: str, params: dict) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self.http_client is not None:
            return await self.http_client.get(url, params=params, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, params=params, headers=headers)

    async def fetch(self, indicator: str, country_code: str, year: Optional[int] = None) -> dict:
        try:
            args = EconomicIndicatorInput(indicator=indicator, country_code=country_code, year=year)
        except PydanticValidationError as e:
            return validation_error_response(
                e, "Use an indicator name, an ISO country code and a year between 1900 and now."
            )

        if not self.api_key:
            log.warning("Trading Economics key missing")
            return CommonErrors.api_key_missing("Trading Economics", "TRADINGECONOMICS_KEY")

        url = (
            f"{self.base_url}/historical/country/{quote(args.country_code, safe='')}"
            f"/indicator/{quote(args.indicator, safe='')}"
        )
        params = {"c": self.api_key}
        if args.year:
            params["d1"] = f"{args.year}-01-01"
            params["d2"] = f"{args.year}-12-31"

        try:
            resp = await self._get(url, params)
        except httpx.TimeoutException:
            log.warning("Indicator request timed out | indicator=%s | country=%s", args.indicator, args.country_code)
            return create_error_response(
                "Trading Economics request timed out",
                ErrorType.FETCH_ERROR,
                f"No response within {self.timeout} seconds.",
                "Please try again later.",
            )
        except httpx.HTTPError as e:
            log.warning("Indicator request failed | error=%s", str(e))
            return CommonErrors.network_error("Trading Economics")

        if resp.status_code == 401:
            return CommonErrors.invalid_api_key("Trading Economics", "TRADINGECONOMICS_KEY")
        if resp.status_code == 404:
            return create_error_response(
                f'Indicator "{args.indicator}" not found for country "{args.country_code}"',
                ErrorType.NOT_FOUND,
                "The specified indicator or country code is not recognized by the API.",
                "Please verify the indicator name and country code. Use standard ISO country codes (e.g., US, UK, DE).",
            )
        if resp.status_code == 429:
            return CommonErrors.rate_limit_exceeded("Trading Economics")
        if resp.status_code >= 400:
            log.warning("Indicator request rejected | status=%d", resp.status_code)
            return create_error_response(
                f"Trading Economics returned HTTP {resp.status_code}",
                ErrorType.UNKNOWN_ERROR,
                "An unexpected error occurred while fetching economic indicator data.",
                "Please try again later or contact support if the issue persists.",
            )

        try:
            rows = resp.json()
        except ValueError:
            rows = None

        if not isinstance(rows, list) or not rows:
            suffix = f" for year {args.year}" if args.year else ""
            return create_error_response(
                f'No data found for indicator "{args.indicator}" in country "{args.country_code}"{suffix}',
                ErrorType.NO_DATA,
                "The requested economic indicator data is not available for the specified parameters.",
                "Try using a different indicator name, country code, or year. Common indicators include: GDP, Inflation Rate, Unemployment Rate.",
            )

        # ISO timestamps sort chronologically as strings
        rows = sorted(rows, key=lambda r: str(r.get("DateTime") or ""), reverse=True)
        latest = rows[0]
        log.info(
            "Indicator fetched | indicator=%s | country=%s | records=%d",
            args.indicator,
            args.country_code,
            len(rows),
        )
        return create_success_response(
            {
                "indicator": args.indicator,
                "country": args.country_code,
                "year": args.year or "latest",
                "data": [
                    {
                        "date": r.get("DateTime"),
                        "value": r.get("Value"),
                        "unit": r.get("Unit"),
                        "category": r.get("Category"),
                        "frequency": r.get("Frequency"),
                        "lastUpdate": r.get("LastUpdate"),
                    }
                    for r in rows
                ],
                "metadata": {
                    "totalRecords": len(rows),
                    "latestValue": latest.get("Value"),
                    "latestDate": latest.get("DateTime"),
                    "unit": latest.get("Unit"),
                    "requestedIndicator": args.indicator,
                    "requestedCountry": args.country_code,
                    "requestedYear": args.year,
                },
            }
        )


def build_economic_indicator_tool(client: EconomicIndicatorClient) -> StructuredTool:
    async def economic_indicator(indicator: str, country_code: str, year: Optional[int] = None) -> dict:
        return await client.fetch(indicator, country_code, year)

    return StructuredTool.from_function(
        coroutine=economic_indicator,
        name="economic_indicator_tool",
        description=(
            "Fetch historical values of an economic indicator (GDP, inflation, unemployment, "
            "interest rates, ...) for a country from Trading Economics."
        ),
        args_schema=EconomicIndicatorInput,
        handle_validation_error=handle_tool_validation_error,
    )
