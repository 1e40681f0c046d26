import asyncio

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from modelkeeper import create_app
from modelkeeper.routers.models import _await_campaign
from tests.conftest import EMBED, SELECT_BOTH, VLM
from tests.test_presets import PRESETS


@pytest.fixture
def api(make_manager, server):
    server.file(VLM["url"], b"vision-weights")
    server.file(EMBED["url"], b"embedding-weights")
    manager = make_manager([VLM, EMBED], config=SELECT_BOTH, presets=PRESETS)
    with TestClient(create_app(manager)) as client:
        yield client, manager


def test_health(api):
    client, _ = api
    assert client.get("/health").json() == {"status": "ok"}


def test_status_lists_catalog(api):
    client, _ = api
    payload = client.get("/models/status").json()

    assert [a["id"] for a in payload["assets"]] == ["vlm", "embed"]
    assert payload["ready"] is False
    assert payload["missing"] == ["vlm", "embed"]


def test_waited_download_returns_summary(api, server):
    client, manager = api

    res = client.post("/models/download", params={"wait": True})

    assert res.status_code == 200, res.text
    assert res.json()["ready"] is True
    last = client.get("/models/download/status").json()
    assert last["state"] == "completed"
    assert last["percent"] == 100


def test_background_download_can_be_joined(api, server):
    client, _ = api

    assert client.post("/models/download").json() == {"status": "started"}
    res = client.post("/models/download", params={"wait": True})

    assert res.json()["ready"] is True
    assert server.hits[VLM["url"]] == 1
    assert server.hits[EMBED["url"]] == 1


def test_waited_download_failure_is_bad_gateway(api, server):
    client, _ = api
    server.status(EMBED["url"], 404)

    res = client.post("/models/download", params={"wait": True})

    assert res.status_code == 502
    assert "HTTP 404" in res.json()["detail"]


def test_download_with_id_filter(api, server):
    client, _ = api

    res = client.post("/models/download", params={"wait": True}, json={"ids": ["embed"]})

    assert res.json()["missing"] == ["vlm"]
    assert server.hits[VLM["url"]] == 0


def test_cancel_without_download(api):
    client, _ = api
    assert client.post("/models/download/cancel").status_code == 400


def test_config_roundtrip(api):
    client, manager = api

    res = client.patch("/models/config", json={"context_size": 4096})
    assert res.status_code == 200
    assert res.json()["context_size"] == 4096
    assert client.get("/models/config").json()["context_size"] == 4096
    assert manager.get_config().context_size == 4096

    assert client.patch("/models/config", json={"bogus": 1}).status_code == 422


def test_presets_endpoints(api):
    client, _ = api

    presets = client.get("/models/presets").json()
    assert set(presets["presets"]) == {"eco", "balanced", "pro"}

    assert client.get("/models/presets/recommended").json()["preset"] in {"eco", "balanced", "pro"}

    res = client.post("/models/presets/balanced/apply")
    assert res.status_code == 200
    assert res.json()["active_model_id"] == "vlm-4b"

    assert client.post("/models/presets/ultra/apply").status_code == 404


def test_register_custom_model(api, tmp_path):
    client, manager = api
    custom = {
        "id": "custom-vlm",
        "label": "My model",
        "relative_path": "custom/my.gguf",
        "url": "https://models.test/my.gguf",
        "role": "vision",
    }

    res = client.post("/models/", json=custom)
    assert res.status_code == 201
    assert "custom-vlm" in manager.catalog
    assert client.get("/models/custom-vlm/path").json()["path"].endswith("my.gguf")

    assert client.post("/models/", json=custom).status_code == 409
    assert client.post("/models/", json={**custom, "id": "x", "relative_path": "../x"}).status_code == 422


def test_unknown_asset_paths(api):
    client, _ = api
    assert client.get("/models/nope/path").status_code == 404
    assert client.post("/models/nope/redownload").status_code == 404
    assert client.post("/models/nope/redownload", params={"wait": True}).status_code == 404


def test_waited_redownload(api, server):
    client, _ = api

    res = client.post("/models/vlm/redownload", params={"wait": True})

    assert res.status_code == 200
    assert server.hits[VLM["url"]] == 1
    assert {a["id"]: a["exists"] for a in res.json()["assets"]}["vlm"] is True


def test_routes_without_manager_are_unavailable():
    client = TestClient(create_app())

    res = client.get("/models/status")

    assert res.status_code == 503
    assert client.get("/health").status_code == 200


def test_cancelled_campaign_is_a_conflict():
    async def run():
        campaign = asyncio.create_task(asyncio.sleep(10))
        await asyncio.sleep(0)
        campaign.cancel()
        with pytest.raises(HTTPException) as exc_info:
            await _await_campaign(campaign)
        return exc_info.value

    error = asyncio.run(run())
    assert error.status_code == 409
    assert error.detail == "Download cancelled"


def test_cancelled_request_leaves_campaign_running():
    async def run():
        campaign = asyncio.create_task(asyncio.sleep(0.05, result="done"))
        waiter = asyncio.create_task(_await_campaign(campaign))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert not campaign.cancelled()
        return await campaign

    assert asyncio.run(run()) == "done"
