"""
Pytest configuration and fixtures for the QBBC panel tests
"""

import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import config  # noqa: E402
import db  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    """Every test gets its own database, fast hashing and no seed documents"""
    monkeypatch.setattr(config, "DB_FILE", tmp_path / "panel.db")
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(config, "SEED_MEMBERS", "")
    monkeypatch.setattr(config, "SEED_ADMIN_USERS", "")
    monkeypatch.setattr(config, "SEED_STOCK", "")
    db.clear_subscribers()
    yield
    db.clear_subscribers()


@pytest.fixture(scope="function")
def sample_member():
    """Member with two itemized payments"""
    return {
        "id": "m-1",
        "membershipNumber": "QBBC-2024-001",
        "lastName": "Martin",
        "firstName": "Lucas",
        "category": "U13",
        "phone": "06 12 34 56 78",
        "email": "lucas@example.fr",
        "passSportAmount": 100,
        "payments": [
            {"date": "2024-09-01", "amount": 30, "method": "Cash"},
            {"date": "2024-10-01", "amount": 20, "method": "Check"},
        ],
        "status": "active",
        "role": "entraineur",
    }


@pytest.fixture(scope="function")
def legacy_member():
    """Member written before payments were itemized"""
    return {
        "id": "m-2",
        "membershipNumber": "QBBC-2023-007",
        "lastName": "Le Goff",
        "firstName": "Emma",
        "passSportAmount": 200,
        "remainingBalance": 50,
        "payment1Amount": 100,
        "payment1Date": "2023-09-15",
        "paymentCount": 2,
    }
