"""Utility helpers for InvoiceLocks."""

from .locks import KeyedMutex, KeyedMutexSnapshot, collect_mutex_warnings

__all__ = ["KeyedMutex", "KeyedMutexSnapshot", "collect_mutex_warnings"]
