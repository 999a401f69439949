"""
Pytest configuration file for skiprate tests
"""

import json
import os
import sys
from typing import Any, Dict, List, Optional

import pytest
from click.testing import CliRunner

# Add the parent directory to sys.path to allow imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from skiprate.client import BlockProductionClient
from skiprate.config import ClientConfig
from skiprate.rate_limiter import RateLimiter
from skiprate.transport import HttpResponse, RpcTransport

ENDPOINT = "https://rpc.example.com"


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of waiting."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class FakeSender:
    """
    Scripted HTTP sender.

    Items are HttpResponse objects or exceptions to raise; the last item
    repeats once the script runs out.
    """

    def __init__(self, items):
        self.items = list(items)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def post(self, url: str, payload: Dict[str, Any], timeout: float) -> HttpResponse:
        self.calls.append({"url": url, "payload": payload, "timeout": timeout})
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


def json_response(body: Any, status: int = 200, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
    return HttpResponse(status=status, headers=headers or {}, body=json.dumps(body).encode())


def block_production_body(by_identity: Dict[str, List[int]], first_slot: int = 1000,
                          last_slot: int = 1999) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": 2,
        "result": {
            "context": {"slot": last_slot + 5},
            "value": {
                "byIdentity": by_identity,
                "range": {"firstSlot": first_slot, "lastSlot": last_slot},
            },
        },
    }


SCENARIO_A = {
    "perfect": [100, 100],
    "good": [100, 98],
    "concerning": [100, 90],
    "bad": [100, 80],
}

MIXED = {
    "offline": [40, 0],
    "big_ok": [2000, 1990],
    "idle": [0, 0],
    "tiny": [5, 4],
    "moderate": [200, 194],
    "perfect": [120, 120],
    "slow": [60, 45],
    "big_bad": [1500, 1200],
}


@pytest.fixture
def runner():
    """Create a CLI runner for testing"""
    return CliRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return ClientConfig(rpc_endpoint=ENDPOINT, timeout=5.0, retry_attempts=3)


@pytest.fixture
def make_transport(clock):
    """Factory for a transport wired to a scripted sender and the fake clock"""
    def factory(items, config: Optional[ClientConfig] = None, rate_limiter: Optional[RateLimiter] = None):
        config = config or ClientConfig(rpc_endpoint=ENDPOINT, timeout=5.0, retry_attempts=3)
        sender = FakeSender(items)
        transport = RpcTransport(config, rate_limiter=rate_limiter, sender=sender,
                                 sleep=clock.sleep, clock=clock)
        return transport, sender
    return factory


@pytest.fixture
def make_client(make_transport):
    """Factory for a client whose transport talks to a scripted sender"""
    def factory(items, config: Optional[ClientConfig] = None):
        config = config or ClientConfig(rpc_endpoint=ENDPOINT, timeout=5.0, retry_attempts=3)
        transport, sender = make_transport(items, config)
        return BlockProductionClient(config, transport=transport), sender
    return factory


@pytest.fixture
def scenario_a_response():
    return json_response(block_production_body(SCENARIO_A))


@pytest.fixture
def mixed_response():
    return json_response(block_production_body(MIXED))
