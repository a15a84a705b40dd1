""" Remote step store: the REST endpoints the builder reads from and saves to. """
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..core.config import get_settings
from ..core.errors import RemoteStoreError
from ..core.logging import get_logger
from .schema import (
    BulkCreateRequest,
    BulkCreateResponse,
    BulkUpdateRequest,
    BulkUpdateResponse,
    DatasourcesResponse,
    WorkflowResponse,
    parse_model,
)

logger = get_logger(__name__)


class StepStore(ABC):
    """ Abstract base class for the store that owns persisted steps. """

    @abstractmethod
    def fetch_workflow(self, workflow_id: int) -> WorkflowResponse:
        pass

    @abstractmethod
    def bulk_create(self, request: BulkCreateRequest) -> BulkCreateResponse:
        pass

    @abstractmethod
    def bulk_update(self, request: BulkUpdateRequest) -> BulkUpdateResponse:
        pass

    @abstractmethod
    def delete_step(self, step_id: int) -> None:
        pass

    @abstractmethod
    def fetch_datasources(self, execution_point: str) -> DatasourcesResponse:
        pass


class HttpStepStore(StepStore):
    """ StepStore backed by the validation REST API. """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        store_settings = get_settings().store
        headers = {"Accept": "application/json"}
        token = token if token is not None else store_settings.token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.Client(
            base_url=(base_url or store_settings.base_url).rstrip("/"),
            headers=headers,
            timeout=timeout if timeout is not None else store_settings.timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpStepStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, url: str, body: Optional[Dict[str, Any]] = None) -> Any:
        logger.debug(f"{method} {url}")
        try:
            response = self._client.request(method, url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error(f"{method} {url} rejected with HTTP {status}")
            raise RemoteStoreError(f"{method} {url} failed with HTTP {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            logger.error(f"{method} {url} failed: {exc}")
            raise RemoteStoreError(f"{method} {url} failed: {exc}") from exc

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.error(f"{method} {url} returned a body that is not JSON")
            raise RemoteStoreError(f"{method} {url} returned invalid JSON: {exc}",
                                   status_code=response.status_code) from exc

    def fetch_workflow(self, workflow_id: int) -> WorkflowResponse:
        raw = self._request("GET", f"/validations/workflows/{workflow_id}/")
        return parse_model(WorkflowResponse, raw)

    def bulk_create(self, request: BulkCreateRequest) -> BulkCreateResponse:
        raw = self._request("POST", "/validations/steps/bulk_create/", request.model_dump())
        return parse_model(BulkCreateResponse, raw or {})

    def bulk_update(self, request: BulkUpdateRequest) -> BulkUpdateResponse:
        raw = self._request("PUT", "/validations/steps/bulk_update/", request.model_dump())
        return parse_model(BulkUpdateResponse, raw or {})

    def delete_step(self, step_id: int) -> None:
        self._request("DELETE", f"/validations/steps/{step_id}/")

    def fetch_datasources(self, execution_point: str) -> DatasourcesResponse:
        raw = self._request("GET", f"/validations/execution-points/{execution_point}/datasources/")
        return parse_model(DatasourcesResponse, raw)
