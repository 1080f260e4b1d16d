"""
Data sources for options, rows and grids.

A source can be a static array, a computed property, a dataview reference
(`{"type": "dataview", "dataview_id": ...}` or `"dataview:<id>"`), a JSON
string, or the dataKey of another field. Remote loads go through a
`RemoteDataLoader`; their failures degrade to no data with a warning.
"""
import json
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

import httpx

from formx.core.cache import DataCache
from formx.core.errors import DataSourceError
from formx.core.http import build_http_client
from formx.core.logging import get_logger
from formx.lib.computed import ComputedPropertyEvaluator

logger = get_logger(__name__)

DATAVIEW_PREFIX = "dataview:"
REMOTE_PREFIX = "remote:"

# envelope keys under which APIs commonly return their rows
_ARRAY_KEYS = ("items", "data", "results")


@runtime_checkable
class RemoteDataLoader(Protocol):
    async def load_array(self, descriptor: Mapping[str, Any]) -> List[Any]: ...


def as_array(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    if isinstance(value, Mapping):
        for key in _ARRAY_KEYS:
            if isinstance(value.get(key), list):
                return value[key]
        keys = list(value.keys())
        if keys and all(str(k).isdigit() for k in keys):
            return [value[k] for k in sorted(keys, key=lambda k: int(k))]
    return []


def dataview_descriptor(source: Any) -> Optional[Dict[str, Any]]:
    """Normalised `{"type": "dataview", "dataview_id", "filters"}` for a dataview reference, else None."""
    if isinstance(source, str) and source.startswith(DATAVIEW_PREFIX):
        return {"type": "dataview", "dataview_id": source[len(DATAVIEW_PREFIX):], "filters": {}}
    if isinstance(source, Mapping) and source.get("type") == "dataview" and "dataview_id" in source:
        return {"type": "dataview", "dataview_id": str(source["dataview_id"]), "filters": dict(source.get("filters") or {})}
    return None


class HttpDataviewLoader:
    """
    Loads dataview rows over HTTP: `GET {base}/dataviews/{id}/data` with the
    filter parameters as query string. Results are cached per id and filters.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[DataCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: Optional[str] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self._transport = transport
        self._base_url = base_url
        self.cache = cache if cache is not None else DataCache()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_http_client(self._transport, self._base_url)
        return self._client

    @staticmethod
    def cache_key(dataview_id: str, filters: Mapping[str, Any]) -> str:
        return f"{dataview_id}?{json.dumps(dict(filters), sort_keys=True, default=str)}"

    async def load_array(self, descriptor: Mapping[str, Any]) -> List[Any]:
        dataview_id = descriptor.get("dataview_id")
        if not dataview_id:
            raise DataSourceError(descriptor, "Missing dataview_id")
        filters = descriptor.get("filters") or {}

        key = self.cache_key(dataview_id, filters)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"[DATASOURCE] Cache hit for {key}")
            return cached

        try:
            response = await self.client.get(f"/dataviews/{dataview_id}/data", params=filters)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise DataSourceError(descriptor, f"Failed to load dataview: {e}") from e
        except ValueError as e:
            raise DataSourceError(descriptor, "Dataview response is not JSON") from e

        rows = as_array(payload)
        self.cache.set(key, rows)
        logger.info(f"[DATASOURCE] Loaded {len(rows)} row(s) from dataview '{dataview_id}'")
        return rows

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()


async def resolve_data_source(
    source: Any,
    form_data: Optional[Mapping[str, Any]] = None,
    loader: Optional[RemoteDataLoader] = None,
    evaluator: Optional[ComputedPropertyEvaluator] = None,
) -> Any:
    if source is None or source == "" or source is False:
        return None
    form_data = form_data or {}

    descriptor = dataview_descriptor(source)
    if descriptor is not None:
        if loader is None:
            logger.warning(f"[DATASOURCE] No remote loader configured for {source!r}")
            return None
        try:
            return await loader.load_array(descriptor)
        except DataSourceError as e:
            logger.warning(f"[DATASOURCE] {e}")
            return None

    if isinstance(source, list):
        return source

    if isinstance(source, Mapping):
        if "computeType" in source:
            return (evaluator or ComputedPropertyEvaluator()).evaluate(dict(source), form_data)
        return source

    if isinstance(source, str):
        if source.startswith(REMOTE_PREFIX):
            logger.warning(f"[DATASOURCE] Remote array references are not supported: {source!r}")
            return None
        try:
            return json.loads(source)
        except ValueError:
            return form_data.get(source)

    return None


async def resolve_array_data_source(
    source: Any,
    form_data: Optional[Mapping[str, Any]] = None,
    loader: Optional[RemoteDataLoader] = None,
    evaluator: Optional[ComputedPropertyEvaluator] = None,
) -> List[Any]:
    return as_array(await resolve_data_source(source, form_data, loader, evaluator))
