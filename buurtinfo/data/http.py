"""Thin JSON-over-HTTP helpers shared by the data sources."""

import logging
from typing import Any

import httpx

from buurtinfo.config import settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 6.0


def build_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Client shared by every upstream; follows redirects from moved hosts."""
    return httpx.AsyncClient(
        timeout=settings.request_timeout,
        follow_redirects=True,
        transport=transport,
    )


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    params: dict[str, Any] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """GET a URL and decode its JSON body.

    Raises httpx.HTTPStatusError for non-2xx responses, httpx.RequestError for
    network failures and timeouts, and ValueError for undecodable bodies.
    """
    resp = await client.get(url, params=params, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


async def post_form_json(
    client: httpx.AsyncClient,
    url: str,
    data: dict[str, str],
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    resp = await client.post(url, data=data, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def odata_rows(payload: Any) -> list[dict]:
    """Rows of an OData ``{"value": [...]}`` payload; anything else is empty."""
    if not isinstance(payload, dict):
        return []
    rows = payload.get("value")
    if not isinstance(rows, list):
        return []
    return [r for r in rows if isinstance(r, dict)]


def locatieserver_docs(payload: Any) -> list[dict]:
    """Docs of a Locatieserver ``{"response": {"docs": [...]}}`` payload."""
    if not isinstance(payload, dict):
        return []
    docs = (payload.get("response") or {}).get("docs")
    if not isinstance(docs, list):
        return []
    return [d for d in docs if isinstance(d, dict)]
