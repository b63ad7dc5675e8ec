"""Synchronization components layered over the message store."""

from .aggregator import ConversationAggregator, rebuild
from .history import HistoryLoader
from .reconciler import DeliveryReconciler

__all__ = [
    "ConversationAggregator",
    "DeliveryReconciler",
    "HistoryLoader",
    "rebuild",
]
