"""
Shared fixtures: an in-process stand-in for the remote store.

Every artifact the packaged catalog declares is served from bytes written once
per session from the synthetic factories; ``urllib.request.urlopen`` is
monkeypatched so no test touches the network. Each test gets a fresh cache
directory and a call log to assert on download counts.
"""

from __future__ import annotations

import io
import urllib.error
import urllib.request
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from imcdatasets.artifacts import write_image_stack
from imcdatasets.config import HubConfig
from imcdatasets.hub import HubClient
from imcdatasets.registry import CacheKey, load_catalog
from imcdatasets.resolver import DatasetResolver
from tests.factories import make_images, make_masks, make_single_cell

BASE_URL = "https://store.test/hub"


class FakeResponse(io.BytesIO):
    def __init__(self, data: bytes, headers: Dict[str, str]) -> None:
        super().__init__(data)
        self.headers = headers


class FakeRemote:
    """Callable replacement for ``urllib.request.urlopen``."""

    def __init__(self, payloads: Dict[str, bytes]) -> None:
        self.payloads = dict(payloads)
        self.calls: List[str] = []
        self.truncated: set = set()
        self.error: Optional[Exception] = None

    def __call__(self, request, timeout=None):
        url = request.full_url if isinstance(request, urllib.request.Request) else request
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        relative = url[len(BASE_URL) + 1 :]
        if relative not in self.payloads:
            raise urllib.error.HTTPError(url, 404, "Not Found", None, None)
        data = self.payloads[relative]
        headers = {"Content-Length": str(len(data))}
        if relative in self.truncated:
            data = data[: len(data) // 2]
        return FakeResponse(data, headers)

    def count(self, key: CacheKey) -> int:
        return self.calls.count(f"{BASE_URL}/{key.relative_path}")


@pytest.fixture(scope="session")
def artifact_bytes(tmp_path_factory) -> Dict[str, bytes]:
    root = tmp_path_factory.mktemp("artifacts")
    paths = {
        "sce": root / "sce.h5ad",
        "spe": root / "spe.h5ad",
        "images": root / "images.h5",
        "masks": root / "masks.h5",
    }
    make_single_cell("sce").write_h5ad(paths["sce"])
    make_single_cell("spe").write_h5ad(paths["spe"])
    write_image_stack(make_images(), paths["images"])
    write_image_stack(make_masks(), paths["masks"])
    return {data_type: path.read_bytes() for data_type, path in paths.items()}


@pytest.fixture
def remote(artifact_bytes, monkeypatch) -> FakeRemote:
    payloads = {
        key.relative_path: artifact_bytes[key.data_type]
        for key in load_catalog().keys()
    }
    fake = FakeRemote(payloads)
    monkeypatch.setattr(urllib.request, "urlopen", fake)
    return fake


@pytest.fixture
def hub_config(tmp_path: Path) -> HubConfig:
    return HubConfig(cache_root=tmp_path / "cache", base_url=BASE_URL, timeout=5.0)


@pytest.fixture
def client(hub_config, remote) -> HubClient:
    return HubClient(load_catalog(), hub_config)


@pytest.fixture
def resolver(client) -> DatasetResolver:
    return DatasetResolver(client.catalog, client)
