"""JSON-over-HTTP adapter implementing the RemoteSource protocol.

Keys are strings of the form "<kind>:<id>" or "<kind>". The kind selects a
path template from the route table and the id fills its "{id}" placeholder:

    routes = {"post": "/posts/{id}", "posts": "/posts"}
    "post:1" -> GET /posts/1
    "posts"  -> GET /posts

Object responses become the record payload; list responses are wrapped as
{"items": [...]}. Transport, status and decoding failures are raised as
RemoteError with the matching FetchErrorType. There are no retries.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Self
from urllib.parse import quote

import httpx

from larder.domain.entities import FetchErrorType, Record
from larder.domain.exceptions import RemoteError

logger = logging.getLogger(__name__)


class HttpJsonSource:
    """RemoteSource fetching JSON records over HTTP.

    Args:
        base_url: Base URL the route templates are resolved against.
        routes: Key kind to path template.
        timeout: Request timeout in seconds.
        headers: Extra headers sent with every request.
        client: Pre-configured httpx.Client (e.g., with a MockTransport).
            When given, base_url/timeout/headers are not applied and the
            caller keeps ownership of the client.
    """

    def __init__(
        self,
        base_url: str,
        routes: Mapping[str, str],
        *,
        timeout: float = 10.0,
        headers: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._routes = dict(routes)
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers=dict(headers or {}),
        )

    def resolve(self, key: str) -> str:
        """Return the request path for key.

        Raises:
            RemoteError: If no route matches the key's kind or the route
                needs an id the key does not have.
        """
        kind, _, ident = key.partition(":")
        template = self._routes.get(kind)
        if template is None:
            raise RemoteError(
                f"No route for key {key!r}",
                hint=f"Add a '{kind}' entry under [remote.routes]",
                error_type=FetchErrorType.UNKNOWN,
            )
        if "{id}" in template:
            if not ident:
                raise RemoteError(
                    f"Key {key!r} needs an id, e.g. '{kind}:1'",
                    error_type=FetchErrorType.UNKNOWN,
                )
            return template.format(id=quote(ident, safe=""))
        return template

    def fetch(self, key: str) -> Record:
        """Fetch the record for key.

        Raises:
            RemoteError: If the request fails or the body is not JSON.
        """
        path = self.resolve(key)
        logger.debug("GET %s for %r", path, key)
        try:
            response = self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteError(
                f"{key!r}: server answered {e.response.status_code}",
                error_type=FetchErrorType.PROTOCOL_ERROR,
            ) from e
        except httpx.TransportError as e:
            raise RemoteError(
                f"{key!r}: request failed: {e}",
                hint="Check your network connection and [remote] base_url",
                error_type=FetchErrorType.NETWORK_ERROR,
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteError(
                f"{key!r}: response is not valid JSON",
                error_type=FetchErrorType.DECODE_ERROR,
            ) from e

        if isinstance(payload, list):
            return Record(key=key, data={"items": payload})
        if isinstance(payload, dict):
            return Record(key=key, data=payload)
        raise RemoteError(
            f"{key!r}: expected a JSON object or list, got {type(payload).__name__}",
            error_type=FetchErrorType.DECODE_ERROR,
        )

    def close(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        self.close()
        return False


def expand_collection(
    collections: Mapping[str, str],
    id_field: str = "id",
) -> Callable[[str, Record], dict[str, Record]]:
    """Build an expander writing collection items under their own keys.

    For a fetched collection key (e.g., "posts" with collections
    {"posts": "post"}), every item carrying id_field is also returned as
    "<item kind>:<id>", so one bulk write caches the list and its items.

    Args:
        collections: Collection kind to item kind.
        id_field: Item field holding the item id.

    Returns:
        Function usable as SyncCoordinator(expand=...).
    """
    kinds = dict(collections)

    def expand(key: str, record: Record) -> dict[str, Record]:
        item_kind = kinds.get(key)
        items = record.data.get("items")
        if item_kind is None or not isinstance(items, list):
            return {}

        entries: dict[str, Record] = {}
        for item in items:
            if isinstance(item, dict) and item.get(id_field) is not None:
                item_key = f"{item_kind}:{item[id_field]}"
                entries[item_key] = Record(key=item_key, data=item)
        return entries

    return expand
