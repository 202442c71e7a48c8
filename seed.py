"""
seed.py
First-use seed documents (members, admin accounts) and the stock list.

A source is either a local JSON file or an http(s) URL. Any failure is
logged and reported as None so the caller falls back to what it already has.
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
from loguru import logger

import config


def fetch_seed(source: str | None) -> list | None:
    if not source:
        return None
    try:
        if source.startswith(("http://", "https://")):
            response = httpx.get(source, timeout=config.SEED_TIMEOUT, follow_redirects=True)
            response.raise_for_status()
            data = response.json()
        else:
            data = json.loads(Path(source).read_text(encoding="utf-8"))
    except (httpx.HTTPError, OSError, ValueError) as exc:
        logger.warning("Seed {} unavailable: {}", source, exc)
        return None

    if not isinstance(data, list):
        logger.warning("Seed {} is not a list, ignored", source)
        return None
    return data


def members_seed() -> list | None:
    return fetch_seed(config.SEED_MEMBERS)


def admin_users_seed() -> list | None:
    return fetch_seed(config.SEED_ADMIN_USERS)


def stock_seed() -> list | None:
    return fetch_seed(config.SEED_STOCK)
