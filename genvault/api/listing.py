"""
Paginated enumeration of the remote catalog and creator-label resolution.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from genvault.api.rate_limiter import RandomThrottle
from genvault.core.capabilities import Credentials, RemoteSession
from genvault.exceptions import ListingUnavailableError, RemoteRequestError
from genvault.models.config import SourceMode

log = logging.getLogger(__name__)

LABEL_BATCH_SIZE = 50


def _as_text(value: Any) -> Optional[str]:
    """Freeform remote fields arrive with varying JSON types; keep them as text."""
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        return int(float(value)) if not isinstance(value, int) else value
    except (ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class RemoteItem:
    """One remote record, normalized across both listing variants."""

    id: str
    title: Optional[str] = None
    author_id: Optional[str] = None
    sound: Optional[str] = None
    prompt: Optional[str] = None
    lyrics: Optional[str] = None
    model_display_name: Optional[str] = None
    seed: Optional[int] = None
    play_count: Optional[int] = None
    favorite_count: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Optional["RemoteItem"]:
        """Builds an item from a raw record; records without an id yield None."""
        item_id = data.get("id")
        if not item_id:
            return None

        prompt = None
        conditions = data.get("conditions")
        if isinstance(conditions, list) and conditions and isinstance(conditions[0], dict):
            prompt = _as_text(conditions[0].get("prompt"))

        return cls(
            id=str(item_id),
            title=_as_text(data.get("title")),
            author_id=_as_text(data.get("author_id")),
            sound=_as_text(data.get("sound")),
            prompt=prompt,
            lyrics=_as_text(data.get("lyrics")),
            model_display_name=_as_text(data.get("model_display_name")),
            seed=_as_int(data.get("seed")),
            play_count=_as_int(data.get("play_count")),
            favorite_count=_as_int(data.get("favorite_count")),
            created_at=_as_text(data.get("created_at")),
        )


def extract_page(data: Any) -> list[dict[str, Any]]:
    """Accepts a bare JSON array or an envelope; anything else is an empty page."""
    if isinstance(data, dict):
        data = data.get("generations", data.get("items"))
    if not isinstance(data, list):
        return []
    return [record for record in data if isinstance(record, dict)]


class ListingFetcher:
    """
    Enumerates the remote listing page by page.

    `favorites` addresses pages by index, `published` by running offset; both
    produce the same deduplicated list of `RemoteItem`.
    """

    def __init__(
        self,
        session: RemoteSession,
        base_uri: str,
        page_size: int,
        throttle: RandomThrottle,
    ):
        self.session = session
        self.base_uri = base_uri.rstrip("/")
        self.page_size = page_size
        self.throttle = throttle

    def favorites_url(self, page: int, limit: int) -> str:
        return (
            f"{self.base_uri}/__api/v2/generations/favorites?limit={limit}&page={page}"
        )

    def published_url(self, owner_id: str, offset: int, limit: int) -> str:
        return (
            f"{self.base_uri}/__api/v2/users/{owner_id}/generations"
            f"?offset={offset}&limit={limit}&public=true"
        )

    @property
    def usernames_url(self) -> str:
        return f"{self.base_uri}/__api/usernames/get"

    def _page_url(
        self, mode: SourceMode, credentials: Credentials, page_number: int
    ) -> str:
        if mode == SourceMode.PUBLISHED:
            return self.published_url(
                credentials.owner_id, page_number * self.page_size, self.page_size
            )
        return self.favorites_url(page_number, self.page_size)

    async def verify_access(self, credentials: Credentials) -> bool:
        """Probes the listing with a one-item request."""
        try:
            data = await self.session.request_json(
                self.favorites_url(0, 1), bearer=credentials.bearer_token
            )
        except RemoteRequestError as e:
            log.error(f"[red]Auth check failed: {e}[/red]")
            return False
        if isinstance(data, list):
            log.info(f"Auth verified ({len(data)} item(s) in probe).")
            return True
        log.error("[red]Auth check: unexpected response format.[/red]")
        return False

    async def fetch_all(
        self, mode: SourceMode, credentials: Credentials
    ) -> list[RemoteItem]:
        """
        Fetches every page of the listing.

        Stops at a short or empty page. A request error on a later page stops
        enumeration and returns what was collected so far.

        Raises:
            ListingUnavailableError: If the very first page cannot be fetched.
        """
        items: list[RemoteItem] = []
        seen_ids: set[str] = set()
        page_number = 0

        log.info(f"Fetching {mode.value} listing...")

        while True:
            url = self._page_url(mode, credentials, page_number)
            log.debug(f"  Fetching {url}")
            try:
                data = await self.session.request_json(
                    url, bearer=credentials.bearer_token
                )
            except RemoteRequestError as e:
                if page_number == 0:
                    raise ListingUnavailableError(
                        f"Remote listing is unreachable: {e}"
                    ) from e
                if e.status == 429:
                    self.throttle.on_429()
                log.warning(
                    f"[yellow]  Listing error at page {page_number}: {e}. "
                    f"Keeping {len(items)} items fetched so far.[/yellow]"
                )
                break

            records = extract_page(data)
            if not records:
                log.debug(f"  No more items at page {page_number}")
                break

            new_count = 0
            for record in records:
                item = RemoteItem.from_api(record)
                if item is None or item.id in seen_ids:
                    continue
                seen_ids.add(item.id)
                items.append(item)
                new_count += 1

            log.info(
                f"  Fetched {len(items)} items so far... "
                f"(+{new_count} new from page {page_number})"
            )

            if len(records) < self.page_size:
                break

            page_number += 1
            await self.throttle.wait()

        log.info(f"Fetched {len(items)} {mode.value} items in total.")
        return items

    async def resolve_labels(self, creator_ids: list[str]) -> dict[str, str]:
        """
        Resolves creator ids to display names in batches of 50.

        Unresolvable ids are simply absent from the result.
        """
        labels: dict[str, str] = {}
        unique_ids = list(dict.fromkeys(cid for cid in creator_ids if cid))
        if not unique_ids:
            return labels

        log.debug(f"Resolving {len(unique_ids)} unique creator ids to labels")
        for start in range(0, len(unique_ids), LABEL_BATCH_SIZE):
            batch = unique_ids[start : start + LABEL_BATCH_SIZE]
            try:
                data = await self.session.request_json(
                    self.usernames_url, method="POST", payload={"user_ids": batch}
                )
            except RemoteRequestError as e:
                log.warning(f"[yellow]Label lookup failed for a batch: {e}[/yellow]")
                data = None

            entries = data.get("data") if isinstance(data, dict) else None
            for entry in entries if isinstance(entries, list) else []:
                if not isinstance(entry, dict):
                    continue
                name = entry.get("username") or entry.get("fallback_name")
                if entry.get("user_id") and name:
                    labels[str(entry["user_id"])] = str(name)

            if start + LABEL_BATCH_SIZE < len(unique_ids):
                await self.throttle.wait()

        log.debug(f"Resolved {len(labels)} labels")
        return labels
