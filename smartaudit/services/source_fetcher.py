import os
import logging
from typing import Optional

import requests
from web3 import Web3

logger = logging.getLogger(__name__)

# Base URL for Etherscan v2 API (overridable via env)
ETHERSCAN_V2_BASE = os.getenv("ETHERSCAN_V2_BASE", "https://api.etherscan.io/v2/api")

CHAIN_IDS = {
    "ethereum": "1",
    "mainnet": "1",
    "sepolia": "11155111",
    "polygon": "137",
    "bsc": "56",
    "arbitrum": "42161",
    "optimism": "10",
}


class SourceFetchError(RuntimeError):
    pass


# ---------------------------
# Normalization helpers
# ---------------------------

def normalize_address(addr: str) -> str:
    """Checksum an address (raises SourceFetchError on invalid input)."""
    if not addr:
        raise SourceFetchError("Empty or invalid contract address")
    try:
        return Web3.to_checksum_address(addr.strip())
    except ValueError as e:
        raise SourceFetchError(f"Invalid contract address: {addr}") from e


def chain_id_for(network: Optional[str]) -> str:
    nw = (network or "ethereum").strip().lower()
    return os.getenv("ETHERSCAN_CHAIN_ID") or CHAIN_IDS.get(nw, "1")


# ---------------------------
# Etherscan v2 getsourcecode
# ---------------------------

def _parse_source_result(data: dict) -> dict:
    """
    Pull the verified source out of an Etherscan ``getsourcecode`` answer.

    ``result`` is a list with one entry; unverified contracts come back with
    an empty ``SourceCode``. Multi-file projects wrap a standard-JSON input
    in double braces, which we pass through untouched.
    """
    if str(data.get("status")) == "0":
        raise SourceFetchError(f"Etherscan error: {data.get('message')}: {data.get('result')}")

    res = data.get("result")
    if not isinstance(res, list) or not res or not isinstance(res[0], dict):
        raise SourceFetchError(f"Could not interpret Etherscan response: {data}")

    entry = res[0]
    source = entry.get("SourceCode") or ""
    if not source.strip():
        raise SourceFetchError("Contract source code is not verified on Etherscan")

    compiler = (entry.get("CompilerVersion") or "").lower()
    return {
        "source": source,
        "name": entry.get("ContractName") or None,
        "compiler": entry.get("CompilerVersion") or None,
        "language": "vyper" if "vyper" in compiler else "solidity",
    }


def fetch_verified_source(address: str, network: str = "ethereum",
                          api_key: Optional[str] = None, timeout: float = 20) -> dict:
    """
    Fetch verified source for ``address`` from Etherscan v2 (needs an API key).
    """
    api_key = api_key or os.getenv("ETHERSCAN_API_KEY")
    if not api_key:
        raise SourceFetchError("ETHERSCAN_API_KEY is not set")

    params = {
        "module": "contract",
        "action": "getsourcecode",
        "address": normalize_address(address),
        "apikey": api_key,
        "chainid": chain_id_for(network),
    }
    try:
        resp = requests.get(ETHERSCAN_V2_BASE, params=params, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise SourceFetchError(f"Etherscan request failed: {e}") from e

    out = _parse_source_result(data)
    logger.info("Fetched verified source for %s on %s (%d bytes)",
                params["address"], network, len(out["source"]))
    return out
