"""Pytest configuration and fixtures."""

import copy
from pathlib import Path

import pytest
import yaml

from dynarch.history.loader import history_from_dict, load_history
from dynarch.history.model import History

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def shop_path() -> Path:
    """Path to the browser/shop scenario snapshot."""
    return FIXTURES / "shop.yaml"


@pytest.fixture
def shop_history(shop_path: Path) -> History:
    """The browser/shop scenario, loaded."""
    return load_history(shop_path)


@pytest.fixture
def shop_data(shop_path: Path) -> dict:
    """Raw snapshot data for tests that edit the scenario before loading."""
    return copy.deepcopy(yaml.safe_load(shop_path.read_text(encoding="utf-8")))


@pytest.fixture
def build():
    """Build a history from (possibly edited) snapshot data."""
    return history_from_dict
