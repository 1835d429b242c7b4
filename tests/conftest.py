"""
Pytest configuration file for the lazy iterator tests.

This file ensures that the project root is in the Python path
so that test files can import lazy_iterator, utils, and models modules.
"""

import sys
from pathlib import Path

# Add the parent directory to the Python path
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from lazy_iterator import LazyIterator
from utils import clear_performance_metrics


def _drain_raw(get_next, limit=100):
    pulled = []
    for _ in range(limit):
        value = get_next()
        pulled.append(value)
        if value is LazyIterator.End:
            break
    return pulled


@pytest.fixture
def drain():
    """Pull from a raw callable until End, returning every pulled value"""
    return _drain_raw


@pytest.fixture
def numbers():
    """Fresh iterator over 1..6"""
    return LazyIterator.from_sequence([1, 2, 3, 4, 5, 6])


@pytest.fixture
def call_log():
    """List that tracking callables append to"""
    return []


@pytest.fixture(autouse=True)
def reset_performance_metrics():
    """Every test starts with an empty performance ledger"""
    clear_performance_metrics()
    yield
    clear_performance_metrics()
