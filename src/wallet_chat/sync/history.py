"""Hydrate the message store from durable history."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from ..codec.wire import HistoryRecord
from ..core.identity import normalize_identity
from ..core.interfaces import HistoryProvider
from ..core.models import HistoryReport, Message
from ..storage.message_store import MessageStore
from .aggregator import ConversationAggregator

LOGGER = logging.getLogger(__name__)


class HistoryLoader:
    """Fetch history once per identity activation and insert it as confirmed."""

    def __init__(
        self,
        provider: HistoryProvider,
        store: MessageStore,
        aggregator: ConversationAggregator | None = None,
        *,
        limit: int = 100,
    ) -> None:
        """Initialise the loader with its collaborator and targets."""
        if limit <= 0:
            raise ValueError("limit must be positive")
        self._provider = provider
        self._store = store
        self._aggregator = aggregator
        self._limit = limit
        self.last_report: HistoryReport | None = None

    def load(self, local_identity: str) -> list[Message]:
        """Fetch history for ``local_identity`` and return the messages inserted."""
        return self.apply(local_identity, self.fetch(local_identity))

    def fetch(self, local_identity: str) -> Sequence[Mapping[str, Any]]:
        """Perform the request/response call without touching the store."""
        self._check_identity(local_identity)
        LOGGER.info("Loading history for %s (limit %s)", local_identity, self._limit)
        return self._provider.fetch_history(local_identity, self._limit)

    def apply(
        self, local_identity: str, records: Sequence[Mapping[str, Any]]
    ) -> list[Message]:
        """Insert fetched ``records`` as confirmed messages in one batch."""
        local = self._check_identity(local_identity)
        inserted: list[Message] = []
        skipped = 0
        with self._store.batch():
            for raw in records:
                message = self._to_message(raw, local)
                if message is None:
                    skipped += 1
                    continue
                if self._store.insert_confirmed(message):
                    inserted.append(message)
                else:
                    skipped += 1

        if self._aggregator is not None and not inserted:
            # No store mutation happened, so no rebuild was triggered.
            self._aggregator.refresh()

        self.last_report = HistoryReport(
            fetched=len(records), inserted=len(inserted), skipped=skipped
        )
        LOGGER.info(
            "History loaded: fetched=%s, inserted=%s, skipped=%s",
            len(records),
            len(inserted),
            skipped,
        )
        return inserted

    def _check_identity(self, local_identity: str) -> str:
        local = normalize_identity(local_identity)
        if local != normalize_identity(self._store.local_identity):
            raise ValueError("History identity does not match the message store")
        return local

    @staticmethod
    def _to_message(raw: Mapping[str, Any], local: str) -> Message | None:
        try:
            record = HistoryRecord.model_validate(raw)
        except ValidationError as exc:
            LOGGER.warning("Skipping malformed history record: %s", exc)
            return None
        return record.to_message(inbound=normalize_identity(record.to) == local)


__all__ = ["HistoryLoader"]
