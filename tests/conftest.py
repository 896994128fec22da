from __future__ import annotations

import json
from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session")
def catalog_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "catalog.json"


@pytest.fixture
def catalog_payload(catalog_path: Path) -> dict:
    return json.loads(catalog_path.read_text(encoding="utf-8"))


@pytest.fixture
def shipping_address() -> dict:
    return {
        "name": "Ada Lovelace",
        "street": "12 Analytical Way",
        "city": "London",
        "postal_code": "NW1 2BE",
        "country": "UK",
    }
