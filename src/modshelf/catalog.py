"""Steam Workshop catalog client (GetPublishedFileDetails)."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import aiohttp

from modshelf.errors import CatalogError
from modshelf.models import CatalogItem

logger = logging.getLogger(__name__)

STEAM_API_URL = "https://api.steampowered.com/ISteamRemoteStorage/GetPublishedFileDetails/v1/"
MAX_BATCH_SIZE = 100  # Steam API limit
DEFAULT_BATCH_DELAY = 1.0
DEFAULT_TIMEOUT = 30.0
# Steam "result" code for a found, visible item
_RESULT_OK = 1


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_datetime(value: Any) -> datetime:
    return datetime.fromtimestamp(_to_int(value), tz=timezone.utc)


def parse_item(raw: dict[str, Any]) -> CatalogItem | None:
    """Convert one ``publishedfiledetails`` entry; None if not found/denied."""
    if _to_int(raw.get("result")) != _RESULT_OK:
        return None
    return CatalogItem(
        id=str(raw.get("publishedfileid", "")),
        title=raw.get("title") or "",
        description=raw.get("description") or "",
        creator=str(raw.get("creator") or ""),
        preview_url=raw.get("preview_url") or "",
        file_size=_to_int(raw.get("file_size")),
        subscriptions=_to_int(raw.get("subscriptions")),
        tags=[t["tag"] for t in raw.get("tags") or [] if isinstance(t, dict) and t.get("tag")],
        time_created=_to_datetime(raw.get("time_created")),
        time_updated=_to_datetime(raw.get("time_updated")),
    )


def parse_response(payload: dict[str, Any]) -> dict[str, CatalogItem]:
    details = (payload.get("response") or {}).get("publishedfiledetails") or []
    items: dict[str, CatalogItem] = {}
    for raw in details:
        if not isinstance(raw, dict):
            continue
        item = parse_item(raw)
        if item is not None:
            items[item.id] = item
    return items


def _form_data(ids: list[str]) -> dict[str, str]:
    data = {"itemcount": str(len(ids))}
    for index, mod_id in enumerate(ids):
        data[f"publishedfileids[{index}]"] = mod_id
    return data


class SteamWorkshopClient:
    """Batched metadata fetcher with a fair-use delay between batches."""

    def __init__(
        self,
        api_url: str = STEAM_API_URL,
        batch_size: int = MAX_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._api_url = api_url
        self._batch_size = min(batch_size, MAX_BATCH_SIZE)
        self._batch_delay = batch_delay
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _post(self, session: aiohttp.ClientSession, ids: list[str]) -> dict[str, Any]:
        async with session.post(
            self._api_url, data=_form_data(ids), timeout=self._timeout,
        ) as response:
            response.raise_for_status()
            return await response.json(content_type=None)  # type: ignore[no-any-return]

    async def fetch_items(self, ids: list[str]) -> dict[str, CatalogItem]:
        """Fetch metadata for ``ids``; missing or denied items are absent.

        Network/provider errors are logged and whatever was collected so far
        is returned.
        """
        results: dict[str, CatalogItem] = {}
        if not ids:
            return results

        try:
            async with aiohttp.ClientSession() as session:
                for start in range(0, len(ids), self._batch_size):
                    batch = ids[start : start + self._batch_size]
                    logger.info(
                        "Fetching Steam Workshop details for %d mods (%d-%d of %d)",
                        len(batch), start + 1, start + len(batch), len(ids),
                    )
                    payload = await self._post(session, batch)
                    results.update(parse_response(payload))

                    if start + self._batch_size < len(ids):
                        await asyncio.sleep(self._batch_delay)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Steam API batch request failed: %s", e)

        logger.info("Fetched %d of %d workshop items", len(results), len(ids))
        return results

    async def fetch_item(self, mod_id: str) -> CatalogItem | None:
        """Fetch one item. Raises CatalogError on network/provider failure."""
        try:
            async with aiohttp.ClientSession() as session:
                payload = await self._post(session, [mod_id])
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CatalogError(f"Steam API request failed for mod {mod_id}: {e}") from e
        item = parse_response(payload).get(mod_id)
        if item is None:
            logger.warning("Mod %s not found or access denied", mod_id)
        return item

    async def validate_connection(self) -> bool:
        try:
            async with aiohttp.ClientSession() as session:
                payload = await self._post(session, ["3167020"])
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Steam Workshop API connection validation failed: %s", e)
            return False
        return "response" in payload
