"""
Global conftest for the DIG gateway tests.

This file combines:
1. A pretty unified-diff assertion helper for clearer dict-vs-dict failures.
2. Fixtures that wire the gateway with in-memory collaborators so route
   tests never touch a network.
"""

import json
import difflib
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from core_config import Settings
from dig_gateway.app import GatewayServices, create_app
from dig_gateway.resolver import UdiResolver

from tests.helpers.fakes import (
    STORE_ID,
    ROOT_V1,
    FakeChallengeProtocol,
    FakeClock,
    FakeCoinState,
    FakeExecutor,
    FakeMerkleStore,
    FakePeerNetwork,
    FakeRegistry,
    build_gateway,
)


# --------------------------------------------------------------------------- #
# Pretty diff for dict comparisons                                            #
# --------------------------------------------------------------------------- #
def pytest_assertrepr_compare(op, left, right):
    """Pretty unified-diff output when comparing two dicts with ==."""
    if isinstance(left, dict) and isinstance(right, dict) and op == "==":
        lhs = json.dumps(left, indent=2, sort_keys=True).splitlines()
        rhs = json.dumps(right, indent=2, sort_keys=True).splitlines()
        return [""] + list(
            difflib.unified_diff(lhs, rhs, fromfile="left", tofile="right")
        )


# --------------------------------------------------------------------------- #
# Collaborator fakes                                                          #
# --------------------------------------------------------------------------- #
@pytest.fixture
def fakes():
    """One hosted, synced store at ROOT_V1 with a handful of keys."""
    coin = FakeCoinState()
    coin.publish(STORE_ID, ROOT_V1)
    merkle = FakeMerkleStore()
    merkle.put(STORE_ID, ROOT_V1, "index.html", b"<html><head><title>t</title></head><body>hi</body></html>")
    merkle.put(STORE_ID, ROOT_V1, "assets/app.js", b"console.log('dig');\n" * 4)
    merkle.put(STORE_ID, ROOT_V1, "data.bin", bytes(range(64)))
    merkle.put(STORE_ID, ROOT_V1, "sum.clsp", b"(mod (a b) (+ a b))")
    return SimpleNamespace(
        coin=coin,
        merkle=merkle,
        peers=FakePeerNetwork(),
        registry=FakeRegistry([STORE_ID]),
        challenges=FakeChallengeProtocol(),
        executor=FakeExecutor(),
        clock=FakeClock(),
    )


@pytest.fixture
def gateway(fakes):
    return build_gateway(fakes)


@pytest.fixture
def services(fakes, gateway):
    return GatewayServices(
        coin_state=fakes.coin,
        registry=fakes.registry,
        resolver=UdiResolver(fakes.coin),
        gateway=gateway,
        exec_cache=gateway._exec_cache,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(DIG_FOLDER_PATH=str(tmp_path), DIG_NODE_URL="http://dig-node.test", DIG_PUBLIC_KEY="xch1testkey")


@pytest.fixture
def client(services, settings):
    # No context manager: startup hooks (precache, store folder) stay off
    return TestClient(create_app(services=services, settings=settings), follow_redirects=False)
