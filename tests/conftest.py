import json
from collections import Counter
from pathlib import Path

import httpx
import pytest

from modelkeeper.services.model_manager import ModelManager
from modelkeeper.services.transports import EnvProxyTransport


class FakeServer:
    """Routes absolute URLs to response factories and counts requests."""

    def __init__(self):
        self.routes = {}
        self.hits = Counter()

    def route(self, url, factory):
        self.routes[url] = factory

    def file(self, url, data: bytes):
        self.route(url, lambda request: httpx.Response(200, content=data))

    def redirect(self, url, location, status=302):
        self.route(url, lambda request: httpx.Response(status, headers={"Location": location}))

    def status(self, url, code):
        self.route(url, lambda request: httpx.Response(code))

    def handler(self, request: httpx.Request):
        url = str(request.url)
        self.hits[url] += 1
        factory = self.routes.get(url)
        if factory is None:
            return httpx.Response(404)
        return factory(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def write_catalog(path: Path, models: list[dict]) -> Path:
    path.write_text(json.dumps({"models": models}))
    return path


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def model_root(tmp_path) -> Path:
    return tmp_path / "models"


@pytest.fixture
def make_manager(tmp_path, model_root, server):
    def _make(models, config=None, presets=None, backend=None):
        catalog_path = write_catalog(tmp_path / "models.config.json", models)
        presets_path = tmp_path / "presets.config.json"
        if presets is not None:
            presets_path.write_text(json.dumps(presets))
        if config is not None:
            model_root.mkdir(parents=True, exist_ok=True)
            (model_root / "user.config.json").write_text(json.dumps(config))
        return ModelManager(
            model_root,
            catalog_path,
            presets_path,
            transport_factory=lambda: EnvProxyTransport(
                transport=server.transport(), chunk_size=4
            ),
            backend=backend,
        )

    return _make


VLM = {
    "id": "vlm",
    "label": "Vision model",
    "relative_path": "qwenvl/vlm.gguf",
    "url": "https://models.test/vlm.gguf",
    "role": "vision",
}
EMBED = {
    "id": "embed",
    "label": "Embedding model",
    "relative_path": "embed.gguf",
    "url": "https://models.test/embed.gguf",
    "role": "embedding",
}
SELECT_BOTH = {"active_model_id": "vlm", "active_embedding_model_id": "embed"}
