"""
Fire-and-forget view invalidation after a committed order transition.

Nothing in reconciliation depends on these calls succeeding.
"""
from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from storefront.core.config import settings

log = structlog.get_logger(__name__)

# keep references so pending tasks are not garbage collected
_pending: set[asyncio.Task] = set()


def order_paths(order_id: int) -> list[str]:
    return ["/account/orders", f"/account/orders/{order_id}", "/admin/orders", "/products"]


async def _send_single(client: httpx.AsyncClient, url: str, payload: dict[str, Any]) -> None:
    try:
        response = await client.post(url, json=payload)
        if response.status_code >= 400:
            log.warning("revalidate_rejected", url=url, status=response.status_code)
    except httpx.HTTPError as e:
        log.warning("revalidate_error", url=url, error=str(e))


async def revalidate(paths: list[str]) -> None:
    urls = settings.revalidate_urls
    if not urls or not paths:
        return

    payload = {"paths": paths}
    async with httpx.AsyncClient(timeout=5.0) as client:
        await asyncio.gather(*(_send_single(client, url, payload) for url in urls), return_exceptions=True)


def schedule_revalidation(paths: list[str]) -> None:
    if not settings.revalidate_urls:
        return
    try:
        task = asyncio.get_running_loop().create_task(revalidate(paths))
    except RuntimeError:
        log.warning("revalidate_skipped", reason="no_running_loop")
        return
    _pending.add(task)
    task.add_done_callback(_pending.discard)
