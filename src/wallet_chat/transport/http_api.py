"""httpx clients for the request/response collaborators."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from types import TracebackType
from typing import Any

import httpx

from ..core.config import ApiSettings
from ..core.errors import ChatSyncError, CollaboratorError, HistoryError
from ..core.interfaces import ContactDirectory, DocumentStore, HistoryProvider
from ..core.models import Attachment, Contact

LOGGER = logging.getLogger(__name__)

_RETRYABLE_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE"})


class ApiClient:
    """Synchronous JSON client with bounded retries."""

    error_class: type[ChatSyncError] = CollaboratorError

    def __init__(
        self,
        settings: ApiSettings,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the client; an ``httpx.Client`` is created when omitted."""
        self._settings = settings
        self._client = client or httpx.Client(
            base_url=settings.base_url, timeout=settings.timeout_seconds
        )
        self._sleep = sleep

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Release pooled connections."""
        self._client.close()

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Only idempotent methods are retried; a failed ``POST`` is attempted once
        so that a write the server already applied is never repeated.
        """
        last_error: Exception | None = None
        attempts = self._settings.retries if method.upper() in _RETRYABLE_METHODS else 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.request(method, path, params=params, json=json)
                response.raise_for_status()
                return response.json() if response.content else None
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    raise self.error_class(
                        f"{method} {path} failed with status "
                        f"{exc.response.status_code}"
                    ) from exc
                last_error = exc
            except httpx.HTTPError as exc:  # pragma: no cover - network dependent
                last_error = exc
            except ValueError as exc:
                raise self.error_class(f"{method} {path} returned invalid JSON") from exc

            LOGGER.warning(
                "%s %s failed (attempt %s/%s): %s",
                method,
                path,
                attempt,
                attempts,
                last_error,
            )
            if attempt < attempts:
                self._sleep(min(2**attempt, 8))

        raise self.error_class(f"{method} {path} failed after retries") from last_error


class HttpHistoryProvider(ApiClient, HistoryProvider):
    """Fetch durable message history from ``GET /api/messages``."""

    error_class = HistoryError

    def fetch_history(self, identity: str, limit: int) -> Sequence[Mapping[str, Any]]:
        """Return raw history rows for ``identity``."""
        payload = self.request_json(
            "GET", "/api/messages", params={"walletAddress": identity, "limit": limit}
        )
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise HistoryError("History endpoint did not return a list")
        return payload


class HttpContactDirectory(ApiClient, ContactDirectory):
    """Read the owner's address book from ``GET /api/contacts``."""

    def list_contacts(self, owner: str) -> Sequence[Contact]:
        """Return contacts saved by ``owner``; malformed rows are skipped."""
        payload = self.request_json(
            "GET", "/api/contacts", params={"ownerWalletAddress": owner}
        )
        if not isinstance(payload, list):
            raise CollaboratorError("Contacts endpoint did not return a list")
        contacts: list[Contact] = []
        for row in payload:
            if not isinstance(row, dict):
                continue
            address = row.get("contactWalletAddress")
            if not isinstance(address, str) or not address:
                continue
            name = row.get("contactName")
            contacts.append(
                Contact(address=address, name=name if isinstance(name, str) else None)
            )
        return contacts


class HttpDocumentStore(ApiClient, DocumentStore):
    """File attachments through ``POST /api/documents``."""

    def __init__(
        self,
        settings: ApiSettings,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        document_type: str = "chat_attachment",
    ) -> None:
        """Initialise the store with the document type recorded on uploads."""
        super().__init__(settings, client=client, sleep=sleep)
        self._document_type = document_type

    def upload(self, owner: str, attachment: Attachment, data: bytes) -> str | None:
        """Upload the attachment and return the id the server assigned."""
        body = {
            "fileName": attachment.name,
            "fileType": attachment.media_type,
            "fileSize": len(data),
            "fileData": attachment.payload,
            "uploadedBy": owner,
            "documentType": self._document_type,
        }
        payload = self.request_json("POST", "/api/documents", json=body)
        if isinstance(payload, dict) and payload.get("id") is not None:
            return str(payload["id"])
        return None


__all__ = [
    "ApiClient",
    "HttpContactDirectory",
    "HttpDocumentStore",
    "HttpHistoryProvider",
]
