#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from config_loader import DEFAULT_BASE_URL
from source_normalizer import ExplorerRecord, parse_explorer_response

RATE_LIMIT_CODES = (403, 429)


class ExplorerRequestError(RuntimeError):
    """Explorer could not be reached (or kept refusing) after all retries."""


def fetch_source_response(
    address: str,
    api_key: str,
    *,
    base_url: str = DEFAULT_BASE_URL,
    chain_id: Optional[int] = None,
    timeout: float = 25.0,
    max_retries: int = 4,
    retry_sleep: float = 1.5,
    sleep_sec: float = 0.0,
) -> Dict[str, Any]:
    """GET module=contract&action=getsourcecode for one address and return the JSON body.

    `chain_id` is only sent when given (Etherscan v2 unified endpoint); the
    per-chain v1 endpoints (api.basescan.org/api, ...) don't take it.
    """
    if not address:
        raise ValueError("Missing contract address")
    if not api_key:
        raise ValueError("Missing API key: set EXPLORER_API_KEY (or ETHERSCAN_API_KEY) in .env")

    params: Dict[str, Any] = {
        "module": "contract",
        "action": "getsourcecode",
        "address": address,
        "apikey": api_key,
    }
    if chain_id is not None:
        params["chainid"] = chain_id

    last_error = "no attempt made"
    for attempt in range(1, max_retries + 1):
        try:
            r = requests.get(base_url, params=params, timeout=timeout)
            if r.status_code in RATE_LIMIT_CODES:
                last_error = f"HTTP {r.status_code}"
                logging.warning(f"⚠️ {address}: rate limited ({last_error}), attempt {attempt}/{max_retries}")
                time.sleep(retry_sleep * attempt)
                continue
            r.raise_for_status()
        except requests.RequestException as e:
            last_error = str(e)
            logging.warning(f"⚠️ {address}: request failed ({e}), attempt {attempt}/{max_retries}")
            time.sleep(retry_sleep * attempt)
            continue

        try:
            j = r.json()
        except ValueError as e:
            raise ExplorerRequestError(f"Explorer returned non-JSON body for {address}: {e}") from e
        if sleep_sec:
            time.sleep(sleep_sec)
        return j

    raise ExplorerRequestError(f"Failed to fetch source for {address} after {max_retries} attempts: {last_error}")


def fetch_record(address: str, api_key: str, **kwargs: Any) -> ExplorerRecord:
    return parse_explorer_response(fetch_source_response(address, api_key, **kwargs))
