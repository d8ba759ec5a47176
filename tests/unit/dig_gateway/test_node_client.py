import json

import httpx
import pytest

import core_http.client as http_client
from dig_gateway.errors import SyncPending, UpstreamError
from dig_gateway.executor import ClvmExecutor
from dig_gateway.node_client import DigNodeClient

from tests.helpers.fakes import ROOT_V1, STORE_ID

NODE = "http://dig-node.test"
HEX_KEY = "data.bin".encode().hex()
KEY_PATH = f"/stores/{STORE_ID}/roots/{ROOT_V1}/keys/{HEX_KEY}"


@pytest.fixture
def upstream(monkeypatch):
    """Route table for a MockTransport installed as the shared client."""
    routes = {}
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        reply = routes.get((request.method, request.url.path))
        if reply is None:
            return httpx.Response(404)
        return reply(request) if callable(reply) else reply

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    monkeypatch.setattr(http_client, "_shared_client", client)
    return routes, seen


@pytest.mark.asyncio
async def test_latest_version_and_sync_state(upstream):
    routes, _ = upstream
    routes[("GET", f"/coin/{STORE_ID}/latest")] = httpx.Response(
        200, json={"root_hash": ROOT_V1, "label": "Docs", "description": "d", "bytes": 4096})
    routes[("GET", f"/coin/{STORE_ID}/synced")] = httpx.Response(200, json={"synced": True})
    routes[("GET", f"/coin/{STORE_ID}/history")] = httpx.Response(
        200, json=[{"root_hash": ROOT_V1, "synced": True}])
    node = DigNodeClient(NODE)
    state = await node.fetch_latest_version(STORE_ID)
    assert state.root_hash == ROOT_V1
    assert state.size_bytes == 4096
    assert await node.is_synced(STORE_ID) is True
    history = await node.get_version_history(STORE_ID)
    assert [v.root_hash for v in history] == [ROOT_V1]


@pytest.mark.asyncio
async def test_not_synced_code_maps_to_sync_pending(upstream):
    routes, _ = upstream
    routes[("GET", f"/coin/{STORE_ID}/latest")] = httpx.Response(404, json={"code": "not_synced"})
    with pytest.raises(SyncPending) as exc_info:
        await DigNodeClient(NODE).fetch_latest_version(STORE_ID)
    assert exc_info.value.store_id == STORE_ID


@pytest.mark.asyncio
async def test_other_upstream_failures_map_to_upstream_error(upstream):
    routes, _ = upstream
    routes[("GET", f"/coin/{STORE_ID}/latest")] = httpx.Response(503, text="busy")
    with pytest.raises(UpstreamError):
        await DigNodeClient(NODE).fetch_latest_version(STORE_ID)


@pytest.mark.asyncio
async def test_key_lookups(upstream):
    routes, seen = upstream
    routes[("GET", KEY_PATH + "/exists")] = httpx.Response(200, json={"exists": True})
    routes[("GET", KEY_PATH + "/sha256")] = httpx.Response(200, json={"sha256": "ff" * 32})
    routes[("GET", KEY_PATH + "/proof")] = lambda req: httpx.Response(
        200, json={"proof": "p:" + req.url.params["sha256"][:4]})
    routes[("GET", f"/stores/{STORE_ID}/roots/{ROOT_V1}/keys")] = httpx.Response(200, json={"keys": [HEX_KEY]})
    node = DigNodeClient(NODE)
    assert await node.has_key(STORE_ID, HEX_KEY, ROOT_V1) is True
    sha = await node.content_hash(STORE_ID, HEX_KEY, ROOT_V1)
    assert await node.inclusion_proof(STORE_ID, HEX_KEY, sha, ROOT_V1) == "p:ffff"
    assert await node.list_keys(STORE_ID, ROOT_V1) == [HEX_KEY]


@pytest.mark.asyncio
async def test_missing_hash_is_none(upstream):
    assert await DigNodeClient(NODE).content_hash(STORE_ID, HEX_KEY, ROOT_V1) is None


@pytest.mark.asyncio
async def test_value_stream_forwards_range(upstream):
    routes, seen = upstream
    routes[("GET", KEY_PATH)] = httpx.Response(200, content=b"0123456789")
    chunks = [c async for c in DigNodeClient(NODE).open_value_stream(STORE_ID, HEX_KEY, ROOT_V1, 2, 5)]
    assert b"".join(chunks) == b"0123456789"
    assert seen[-1].url.params["offset"] == "2"
    assert seen[-1].url.params["length"] == "5"


@pytest.mark.asyncio
async def test_value_stream_for_unsynced_store(upstream):
    routes, _ = upstream
    routes[("GET", KEY_PATH)] = httpx.Response(404, json={"code": "not_synced"})
    with pytest.raises(SyncPending):
        async for _ in DigNodeClient(NODE).open_value_stream(STORE_ID, HEX_KEY, ROOT_V1):
            pass


@pytest.mark.asyncio
async def test_peer_lookup(upstream):
    routes, seen = upstream
    node = DigNodeClient(NODE)
    assert await node.find_peer_for_store(STORE_ID, ROOT_V1) is None
    routes[("GET", f"/peers/{STORE_ID}")] = httpx.Response(200, json={"peer": "198.51.100.4"})
    assert await node.find_peer_for_store(STORE_ID, ROOT_V1) == "198.51.100.4"
    assert seen[-1].url.params["version"] == ROOT_V1


@pytest.mark.asyncio
async def test_challenge_round_trip(upstream):
    routes, seen = upstream
    routes[("POST", "/challenges/deserialize")] = httpx.Response(
        200, json={"store_id": STORE_ID, "key": HEX_KEY, "root_hash": ROOT_V1})
    routes[("POST", "/challenges/respond")] = httpx.Response(200, json={"response": "beef"})
    node = DigNodeClient(NODE)
    binding = await node.deserialize("c0de")
    assert binding.key == HEX_KEY
    assert await node.compute_response(STORE_ID, HEX_KEY, ROOT_V1, "c0de") == b"\xbe\xef"
    assert json.loads(seen[-1].content)["challenge"] == "c0de"


@pytest.mark.asyncio
async def test_undecodable_challenge_is_value_error(upstream):
    routes, _ = upstream
    routes[("POST", "/challenges/deserialize")] = httpx.Response(400, json={"detail": "bad"})
    with pytest.raises(ValueError):
        await DigNodeClient(NODE).deserialize("00")


@pytest.mark.asyncio
async def test_clvm_executor_posts_source_and_params(upstream):
    routes, seen = upstream
    routes[("POST", "/run-chialisp")] = httpx.Response(200, json={"result": "9"})
    out = await ClvmExecutor("http://clvm.test").execute("(mod (a b) (+ a b))", ["4", "5"])
    assert out == "9"
    assert json.loads(seen[-1].content) == {"clsp": "(mod (a b) (+ a b))", "params": ["4", "5"]}


@pytest.mark.asyncio
async def test_clvm_failure_is_upstream_error(upstream):
    routes, _ = upstream
    routes[("POST", "/run-chialisp")] = httpx.Response(500)
    with pytest.raises(UpstreamError):
        await ClvmExecutor("http://clvm.test").execute("(q . 1)", [])
