"""
config.py
Environment settings (.env aware) and logging setup.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"

DB_FILE = Path(os.getenv("QBBC_DB_FILE", str(BASE_DIR / "qbbc.db")))

# Seed documents: local path or http(s) URL. Empty string disables seeding.
SEED_MEMBERS = os.getenv("QBBC_SEED_MEMBERS", str(DATA_DIR / "users.json"))
SEED_ADMIN_USERS = os.getenv("QBBC_SEED_ADMIN_USERS", str(DATA_DIR / "adminUsers.json"))
SEED_STOCK = os.getenv("QBBC_SEED_STOCK", str(DATA_DIR / "stock.json"))
SEED_TIMEOUT = float(os.getenv("QBBC_SEED_TIMEOUT", "10"))

BCRYPT_ROUNDS = int(os.getenv("QBBC_BCRYPT_ROUNDS", "12"))

DEFAULT_ADMIN_USERNAME = os.getenv("QBBC_ADMIN_USERNAME", "admin")
DEFAULT_ADMIN_PASSWORD = os.getenv("QBBC_ADMIN_PASSWORD", "admin123")

# Role given back to a member whose elevated role is revoked
FALLBACK_ROLE = "utilisateur"
DEFAULT_MEMBER_ROLE = "membre"

LOG_LEVEL = os.getenv("QBBC_LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("QBBC_LOG_DIR", str(BASE_DIR / "logs")))


def setup_logging() -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=LOG_LEVEL,
    )
    logger.add(
        str(LOG_DIR / "panel_{time:YYYY-MM-DD}.log"),
        rotation="1 day",
        retention="30 days",
        level="DEBUG",
    )
