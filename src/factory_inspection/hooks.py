"""
Async data-access hooks for the inspection REST API.

Every query goes through the injected QueryCache; every successful mutation
invalidates the cache entries it affects before the mutation coroutine
returns, so a read issued after a completed write always refetches.

Failures of any REST call (non-2xx status or transport error) are raised as
FetchError. A 404 on a single-item read is not a failure: it yields None.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

import httpx
from omegaconf import DictConfig
from pydantic import BaseModel, TypeAdapter

from .configuration import get_config
from .errors import FetchError
from .models import (
    Factory,
    FactoryCreate,
    FactoryUpdate,
    Inspection,
    InspectionCreate,
    InspectionUpdate,
)
from .query_cache import QueryCache, QueryKey

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

FACTORIES_PATH = "/api/factories"
FACTORY_SEARCH_PATH = "/api/factories/search"
INSPECTIONS_PATH = "/api/inspections"


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text


class ResourceHooks(Generic[RecordT]):
    """CRUD hooks for one REST collection."""

    path: str = ""
    model: Type[BaseModel]
    create_model: Type[BaseModel]
    update_model: Type[BaseModel]
    label: str = "record"

    def __init__(self, client: httpx.AsyncClient, cache: QueryCache) -> None:
        self.client = client
        self.cache = cache
        self._list_adapter = TypeAdapter(List[self.model])

    @property
    def list_key(self) -> QueryKey:
        return (self.path,)

    def item_key(self, record_id: Union[int, str]) -> QueryKey:
        return (self.path, str(record_id))

    async def _request(self, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise FetchError(f"Failed to {action}") from exc
        return response

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        detail = _detail(response)
        logger.warning(f"{response.request.method} {response.request.url} returned {response.status_code}: {detail}")
        raise FetchError(f"Failed to {action}", status_code=response.status_code, detail=detail)

    def _payload(self, data: Union[BaseModel, Dict[str, Any]], model: Type[BaseModel], partial: bool) -> Dict[str, Any]:
        if not isinstance(data, model):
            data = model.model_validate(data)
        return data.model_dump(mode="json", by_alias=True, exclude_unset=partial)

    def invalidate_lists(self) -> None:
        self.cache.invalidate(self.list_key)

    # Queries

    async def list(self) -> List[RecordT]:
        async def load() -> List[RecordT]:
            action = f"fetch {self.label}s"
            response = await self._request("GET", self.path, action)
            self._raise_for_status(response, action)
            return self._list_adapter.validate_python(response.json())

        return await self.cache.fetch(self.list_key, load)

    async def get(self, record_id: Union[int, str]) -> Optional[RecordT]:
        async def load() -> Optional[RecordT]:
            action = f"fetch {self.label}"
            response = await self._request("GET", f"{self.path}/{record_id}", action)
            if response.status_code == 404:
                return None
            self._raise_for_status(response, action)
            return self.model.model_validate(response.json())

        return await self.cache.fetch(self.item_key(record_id), load)

    # Mutations

    async def create(self, data: Union[BaseModel, Dict[str, Any]]) -> RecordT:
        action = f"create {self.label}"
        payload = self._payload(data, self.create_model, partial=False)
        response = await self._request("POST", self.path, action, json=payload)
        self._raise_for_status(response, action)
        created = self.model.model_validate(response.json())
        self.invalidate_lists()
        return created

    async def update(self, record_id: int, data: Union[BaseModel, Dict[str, Any]]) -> RecordT:
        action = f"update {self.label}"
        payload = self._payload(data, self.update_model, partial=True)
        response = await self._request("PUT", f"{self.path}/{record_id}", action, json=payload)
        self._raise_for_status(response, action)
        updated = self.model.model_validate(response.json())
        self.invalidate_lists()
        self.cache.invalidate(self.item_key(record_id))
        return updated

    async def delete(self, record_id: int) -> None:
        action = f"delete {self.label}"
        response = await self._request("DELETE", f"{self.path}/{record_id}", action)
        self._raise_for_status(response, action)
        self.invalidate_lists()


class FactoryHooks(ResourceHooks[Factory]):
    path = FACTORIES_PATH
    model = Factory
    create_model = FactoryCreate
    update_model = FactoryUpdate
    label = "factory"

    def search_key(self, query: str) -> QueryKey:
        return (FACTORY_SEARCH_PATH, query)

    def invalidate_lists(self) -> None:
        # Search results are lists of factories too
        super().invalidate_lists()
        self.cache.invalidate((FACTORY_SEARCH_PATH,))

    async def list_factories(self) -> List[Factory]:
        return await self.list()

    async def get_factory(self, factory_id: Union[int, str]) -> Optional[Factory]:
        return await self.get(factory_id)

    async def search_factories(self, query: str) -> List[Factory]:
        """
        Search factories by name or address.

        A blank query makes no request and returns no results.
        """
        if not query.strip():
            return []

        async def load() -> List[Factory]:
            action = "search factories"
            response = await self._request("GET", FACTORY_SEARCH_PATH, action, params={"q": query})
            self._raise_for_status(response, action)
            return self._list_adapter.validate_python(response.json())

        return await self.cache.fetch(self.search_key(query), load)

    async def create_factory(self, data: Union[FactoryCreate, Dict[str, Any]]) -> Factory:
        return await self.create(data)

    async def update_factory(self, factory_id: int, data: Union[FactoryUpdate, Dict[str, Any]]) -> Factory:
        return await self.update(factory_id, data)

    async def delete_factory(self, factory_id: int) -> None:
        await self.delete(factory_id)


class InspectionHooks(ResourceHooks[Inspection]):
    path = INSPECTIONS_PATH
    model = Inspection
    create_model = InspectionCreate
    update_model = InspectionUpdate
    label = "inspection"

    async def list_inspections(self) -> List[Inspection]:
        return await self.list()

    async def get_inspection(self, inspection_id: Union[int, str]) -> Optional[Inspection]:
        return await self.get(inspection_id)

    async def create_inspection(self, data: Union[InspectionCreate, Dict[str, Any]]) -> Inspection:
        return await self.create(data)

    async def update_inspection(self, inspection_id: int, data: Union[InspectionUpdate, Dict[str, Any]]) -> Inspection:
        return await self.update(inspection_id, data)

    async def delete_inspection(self, inspection_id: int) -> None:
        await self.delete(inspection_id)


class InspectionApi:
    """
    One HTTP client and one query cache shared by the factory and
    inspection hooks.
    """

    def __init__(self, client: httpx.AsyncClient, cache: Optional[QueryCache] = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else QueryCache()
        self.factories = FactoryHooks(client, self.cache)
        self.inspections = InspectionHooks(client, self.cache)

    @classmethod
    def from_config(cls, config: Optional[DictConfig] = None) -> "InspectionApi":
        config = config if config is not None else get_config()
        client = httpx.AsyncClient(
            base_url=config.client.base_url,
            timeout=httpx.Timeout(config.client.timeout),
            headers={"Accept": "application/json"},
        )
        return cls(client, QueryCache(stale_time=config.client.cache_stale_time))

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "InspectionApi":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
