"""
The narrow capability interface the sync engine depends on.

The engine never talks to an HTTP library or a browser directly; it is handed
an object implementing `RemoteSession`. Production code uses
`genvault.api.session.ProducerSession`, tests use an in-memory fake.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class Credentials:
    """A bearer token plus the identity of the archive owner."""

    bearer_token: str
    owner_id: str

    def __repr__(self) -> str:
        return f"Credentials(owner_id={self.owner_id!r}, bearer_token=<{len(self.bearer_token)} chars>)"


@dataclass(frozen=True)
class ArtifactHandle:
    """A payload written to local storage by one of the acquisition strategies."""

    path: Path
    size_bytes: int
    content_type: str = ""
    strategy: str = "direct"


class RemoteSession(Protocol):
    """Everything the core needs from the outside world."""

    async def request_json(
        self,
        url: str,
        *,
        method: str = "GET",
        payload: Optional[dict[str, Any]] = None,
        bearer: Optional[str] = None,
    ) -> Any:
        """
        Performs a JSON request.

        Raises:
            AuthorizationError: On 401/403.
            RemoteRequestError: On any other non-2xx status or transport failure.
        """
        ...

    async def request_binary(
        self, item_id: str, destination: Path, *, bearer: str
    ) -> ArtifactHandle:
        """
        Direct strategy: downloads an item's audio payload to `destination`.

        Raises:
            AuthorizationError: On 401/403.
            RemoteRequestError: On other failures.
            PayloadIntegrityError: If the payload is not audio or is too small.
        """
        ...

    async def drive_interactive_download(
        self, item_uri: str, destination: Path
    ) -> ArtifactHandle:
        """
        Interactive strategy: drives the item page's own download affordance.

        Raises:
            InteractiveDownloadError: If no download event arrives or the driver
            is unavailable.
        """
        ...

    async def read_credentials(self) -> Credentials:
        """
        Raises:
            CredentialError: If no usable credential can be derived.
        """
        ...

    async def refresh_credentials(self) -> Credentials:
        """Re-reads the credential after an authorization failure."""
        ...
