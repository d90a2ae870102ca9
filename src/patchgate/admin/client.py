"""Admin API client for the patch-management server.

AdminClient is the interface the staged approval engine consumes: five
blocking operations, each raising an AdminApiError subclass on failure.
HttpAdminClient implements it over the server's JSON API with httpx.

Endpoints (relative to ``http(s)://<server>:<port>/api/v1``):
    GET  /updates?approval=unapproved&classification=...
    POST /updates/{id}/approvals        {"group_id": ..., "action": "install"}
    POST /updates/{id}/decline
    GET  /updates/{id}/installation-summary?group_id=...
    GET  /updates/{id}

Error Mapping:
    timeout                 -> AdminTimeoutError (retryable)
    connection failure      -> AdminUnavailableError (retryable)
    HTTP 502/503/504        -> AdminUnavailableError (retryable)
    HTTP 404                -> UpdateNotFoundError
    other HTTP 4xx/5xx      -> AdminRequestError
    malformed payload       -> AdminResponseError
    malformed update record -> logged and skipped
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from patchgate.errors import (
    AdminRequestError,
    AdminResponseError,
    AdminTimeoutError,
    AdminUnavailableError,
    UpdateNotFoundError,
)
from patchgate.schemas.admin import AdminConnectionConfig
from patchgate.schemas.updates import InstallationOutcome, UpdateSummary

logger = structlog.get_logger(__name__)

_UNAVAILABLE_STATUS_CODES = frozenset({502, 503, 504})
_MAX_ERROR_DETAIL = 200


class AdminClient(ABC):
    """Operations the staged approval engine needs from the server.

    Implementations raise AdminApiError subclasses; retry and circuit
    breaking are layered on top by AdminGateway.
    """

    @abstractmethod
    def list_unapproved_updates(self, classifications: Sequence[str]) -> list[UpdateSummary]:
        """List unapproved updates, filtered by classification.

        Args:
            classifications: Classification titles to match. Empty matches all.
        """

    @abstractmethod
    def approve_update(self, update_id: str, group_id: str) -> None:
        """Approve an update for installation on a target group."""

    @abstractmethod
    def decline_update(self, update_id: str) -> None:
        """Decline an update server-wide."""

    @abstractmethod
    def get_installation_outcome(
        self, update_id: str, group_ids: Sequence[str]
    ) -> InstallationOutcome:
        """Aggregate installation counts of an update across target groups."""

    @abstractmethod
    def is_superseded(self, update_id: str) -> bool:
        """Report whether a newer update replaces this one."""

    def close(self) -> None:  # noqa: B027
        """Release resources held by the client."""

    def __enter__(self) -> AdminClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class HttpAdminClient(AdminClient):
    """AdminClient over the server's HTTP JSON API.

    Example:
        >>> connection = AdminConnectionConfig(server="wsus.example.com", port=8531,
        ...                                    use_ssl=True)
        >>> with HttpAdminClient(connection) as client:
        ...     updates = client.list_unapproved_updates(["Security Updates"])
    """

    def __init__(
        self,
        connection: AdminConnectionConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize HttpAdminClient.

        Args:
            connection: Server address and timeouts.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self._connection = connection
        self._client = httpx.Client(
            base_url=connection.base_url,
            timeout=connection.timeout_seconds,
            verify=connection.verify_tls if connection.use_ssl else True,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def base_url(self) -> str:
        return self._connection.base_url

    def close(self) -> None:
        self._client.close()

    def list_unapproved_updates(self, classifications: Sequence[str]) -> list[UpdateSummary]:
        operation = "list_unapproved_updates"
        params: list[tuple[str, str]] = [("approval", "unapproved")]
        params.extend(("classification", c) for c in classifications)

        payload = self._json(operation, self._request(operation, "GET", "/updates", params=params))
        items = payload.get("updates") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise AdminResponseError(operation, "expected a list of updates")

        updates: list[UpdateSummary] = []
        for index, item in enumerate(items):
            try:
                updates.append(UpdateSummary.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "update_record_skipped",
                    index=index,
                    update_id=item.get("id") if isinstance(item, dict) else None,
                    errors=e.error_count(),
                    error=str(e).splitlines()[0],
                )

        logger.debug(
            "unapproved_updates_listed",
            count=len(updates),
            skipped=len(items) - len(updates),
            classifications=list(classifications),
        )
        return updates

    def approve_update(self, update_id: str, group_id: str) -> None:
        operation = "approve_update"
        self._request(
            operation,
            "POST",
            f"{_update_path(update_id)}/approvals",
            update_id=update_id,
            json={"group_id": group_id, "action": "install"},
        )

    def decline_update(self, update_id: str) -> None:
        operation = "decline_update"
        self._request(operation, "POST", f"{_update_path(update_id)}/decline", update_id=update_id)

    def get_installation_outcome(
        self, update_id: str, group_ids: Sequence[str]
    ) -> InstallationOutcome:
        operation = "get_installation_outcome"
        response = self._request(
            operation,
            "GET",
            f"{_update_path(update_id)}/installation-summary",
            update_id=update_id,
            params=[("group_id", g) for g in group_ids],
        )
        payload = self._json(operation, response)
        try:
            return InstallationOutcome.model_validate(payload)
        except ValidationError as e:
            raise AdminResponseError(operation, f"invalid installation summary: {e}") from e

    def is_superseded(self, update_id: str) -> bool:
        operation = "is_superseded"
        payload = self._json(
            operation,
            self._request(operation, "GET", _update_path(update_id), update_id=update_id),
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("is_superseded"), bool):
            raise AdminResponseError(operation, "missing boolean field 'is_superseded'")
        return payload["is_superseded"]

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        update_id: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise AdminTimeoutError(
                operation, f"timed out after {self._connection.timeout_seconds}s"
            ) from e
        except httpx.TransportError as e:
            raise AdminUnavailableError(
                operation, f"cannot reach {self._connection.endpoint}: {e}"
            ) from e

        status = response.status_code
        if status < 400:
            return response

        logger.debug(
            "admin_request_rejected",
            operation=operation,
            method=method,
            path=path,
            status_code=status,
        )
        if status == 404 and update_id is not None:
            raise UpdateNotFoundError(operation, update_id)
        if status in _UNAVAILABLE_STATUS_CODES:
            raise AdminUnavailableError(operation, f"server busy (HTTP {status})")
        raise AdminRequestError(operation, status, response.text[:_MAX_ERROR_DETAIL])

    @staticmethod
    def _json(operation: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise AdminResponseError(operation, "response is not valid JSON") from e


def _update_path(update_id: str) -> str:
    return f"/updates/{quote(update_id, safe='')}"


__all__ = ["AdminClient", "HttpAdminClient"]
