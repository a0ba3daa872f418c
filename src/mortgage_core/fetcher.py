"""Online market-rate lookup (FRED).

Pre-fills the annual rate of a calculation with the latest published US
mortgage rate.  Every lookup is user-triggered; nothing is cached.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import requests

_TIMEOUT = 10  # seconds

# Weekly Freddie Mac PMMS series, in percent
DEFAULT_SERIES = "MORTGAGE30US"
_FRED_URL = "https://api.stlouisfed.org/fred/series/observations"
_FRED_KEY_ENV = "FRED_API_KEY"


class FetchError(Exception):
    """Raised when a market-rate lookup fails for any reason."""


@dataclass(frozen=True)
class MarketRate:
    series_id: str
    rate_percent: float
    observed_on: date


def _observations(series_id: str, api_key: str) -> list[dict[str, Any]]:
    query = {
        "series_id": series_id,
        "api_key": api_key,
        "file_type": "json",
        "sort_order": "desc",
        "limit": 1,
    }
    try:
        resp = requests.get(_FRED_URL, params=query, timeout=_TIMEOUT)
        resp.raise_for_status()
        return resp.json()["observations"]
    except requests.RequestException as exc:
        raise FetchError(f"FRED request for {series_id} failed: {exc}") from exc
    except (KeyError, ValueError) as exc:
        raise FetchError(f"Could not parse the FRED response for {series_id}: {exc}") from exc


def fetch_market_rate(series_id: str = DEFAULT_SERIES) -> MarketRate:
    """Return the most recent observation of *series_id*.

    The rate is an annual percent (6.85 means 6.85%).  Raises FetchError when
    the API key is missing, the request fails or the series has no usable value.
    """
    api_key = os.environ.get(_FRED_KEY_ENV)
    if not api_key:
        raise FetchError(
            f"{_FRED_KEY_ENV} is not set. "
            "Request a free key at https://fred.stlouisfed.org/docs/api/api_key.html"
        )

    observations = _observations(series_id, api_key)
    if not observations:
        raise FetchError(f"FRED has no observations for {series_id}.")
    latest = observations[0]
    # FRED publishes "." for a date with no value
    if latest.get("value") == ".":
        raise FetchError(f"Latest {series_id} observation has no value.")
    try:
        return MarketRate(
            series_id=series_id,
            rate_percent=float(latest["value"]),
            observed_on=datetime.strptime(latest["date"], "%Y-%m-%d").date(),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise FetchError(f"Could not parse the FRED response for {series_id}: {exc}") from exc
