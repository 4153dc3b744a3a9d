"""Test configuration and fixtures"""

import base64
import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from genvault.core.capabilities import ArtifactHandle, Credentials
from genvault.exceptions import InteractiveDownloadError, RemoteRequestError
from genvault.models.config import SyncConfig
from genvault.models.manifest import ArchiveManifest, CatalogItem, ItemStatus
from genvault.storage.manifest_store import ManifestStore
from genvault.storage.staging import StagingArea

BASE_URI = "https://example.test"
MB = 1024 * 1024


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def make_jwt(sub: str = "owner-1") -> str:
    header = b64url(json.dumps({"alg": "HS256", "typ": "JWT"}).encode())
    payload = b64url(json.dumps({"sub": sub, "exp": 4102444800}).encode())
    return f"{header}.{payload}.signature"


def make_session_cookie_value(token: str, prefix: str = "base64-") -> str:
    return prefix + b64url(json.dumps({"access_token": token}).encode())


def write_sized_file(path: Path, size: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)


def make_item(item_id: str, **overrides) -> CatalogItem:
    fields = {
        "title": f"Title {item_id}",
        "creator_label": "Someone",
        "remote_uri": f"{BASE_URI}/song/{item_id}",
    }
    fields.update(overrides)
    return CatalogItem(id=item_id, **fields)


def make_manifest(*items: CatalogItem) -> ArchiveManifest:
    return ArchiveManifest(items={item.id: item for item in items})


class FakeSession:
    """
    In-memory RemoteSession.

    `binary_plan` and `interactive_plan` map an item id to a list of outcomes
    consumed in order: an int writes a file of that size, an exception is raised.
    """

    def __init__(self, credentials: Optional[Credentials] = None):
        self.credentials = credentials or Credentials("token-1", "owner-1")
        self.refreshed_credentials = Credentials("token-2", "owner-1")
        self.json_responses: dict[str, Any] = {}
        self.json_calls: list[tuple[str, str, Any]] = []
        self.binary_plan: dict[str, list[Any]] = {}
        self.interactive_plan: dict[str, list[Any]] = {}
        self.binary_calls: list[tuple[str, str]] = []
        self.interactive_calls: list[str] = []
        self.refresh_count = 0
        self.read_error: Optional[Exception] = None
        self.on_binary: Optional[Callable[[str], None]] = None

    async def request_json(self, url, *, method="GET", payload=None, bearer=None):
        self.json_calls.append((method, url, payload))
        if url not in self.json_responses:
            raise RemoteRequestError("HTTP 404", status=404)
        response = self.json_responses[url]
        if isinstance(response, Exception):
            raise response
        return response

    @staticmethod
    def _next(plan: dict[str, list[Any]], item_id: str, default: Any) -> Any:
        outcomes = plan.get(item_id)
        if not outcomes:
            return default
        return outcomes.pop(0)

    async def request_binary(self, item_id, destination, *, bearer):
        self.binary_calls.append((item_id, bearer))
        if self.on_binary:
            self.on_binary(item_id)
        outcome = self._next(
            self.binary_plan, item_id, RemoteRequestError("HTTP 500", status=500)
        )
        if isinstance(outcome, Exception):
            raise outcome
        write_sized_file(destination, outcome)
        return ArtifactHandle(path=destination, size_bytes=outcome, content_type="audio/wav")

    async def drive_interactive_download(self, item_uri, destination):
        self.interactive_calls.append(item_uri)
        item_id = item_uri.rsplit("/", 1)[-1]
        outcome = self._next(
            self.interactive_plan, item_id, InteractiveDownloadError("No download event")
        )
        if isinstance(outcome, Exception):
            raise outcome
        write_sized_file(destination, outcome)
        return ArtifactHandle(path=destination, size_bytes=outcome, strategy="interactive")

    async def read_credentials(self):
        if self.read_error:
            raise self.read_error
        return self.credentials

    async def refresh_credentials(self):
        self.refresh_count += 1
        return self.refreshed_credentials


class RecordingStore(ManifestStore):
    """ManifestStore that remembers the status counts at every save."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.snapshots: list[dict[ItemStatus, int]] = []

    async def save(self, manifest):
        self.snapshots.append(manifest.count_by_status())
        await super().save(manifest)


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary directory with near-zero delays"""
    return SyncConfig(
        remote_base_uri=BASE_URI,
        output_dir=str(tmp_path / "out"),
        data_dir=str(tmp_path / "data"),
        staging_dir=str(tmp_path / "staging"),
        throttle_delay_range=(0.001, 0.002),
        listing_delay_range=(0.001, 0.002),
        batch_size=1,
    )


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def store(config):
    return RecordingStore(config.manifest_path, config.source_mode)


@pytest.fixture
def staging(config):
    return StagingArea(config.staging_path, config.output_path, config.file_extension)
