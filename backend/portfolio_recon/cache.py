"""Read side of the produced account documents with an explicit TTL cache."""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Hashable, List, TypeVar

from .config import AppSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCOUNTS_KEY = "accounts"


class AccountNotFoundError(KeyError):
    """Raised when a requested account is not present in the document."""


@dataclass
class CachedEntry(Generic[T]):
    stored_at: float
    value: T


class TTLCache(Generic[T]):
    """In-memory cache whose entries expire ``ttl_seconds`` after being set."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: Dict[Hashable, CachedEntry[T]] = {}

    def get(self, key: Hashable) -> T | None:
        cached = self._store.get(key)
        if cached is None:
            return None
        if self._clock() - cached.stored_at >= self.ttl_seconds:
            self._store.pop(key, None)
            return None
        return cached.value

    def set(self, key: Hashable, value: T) -> None:
        self._store[key] = CachedEntry(stored_at=self._clock(), value=value)

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop ``key``, or every entry when no key is given."""

        if key is None:
            self._store.clear()
        else:
            self._store.pop(key, None)

    def __len__(self) -> int:
        return len(self._store)


class AccountDataStore:
    """Serve account documents from the pipeline output file."""

    def __init__(self, path: Path | str, cache: TTLCache[Dict[str, Any]]) -> None:
        self.path = Path(path)
        self.cache = cache

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "AccountDataStore":
        """Serve ``settings.output_path`` with entries kept for ``cache_ttl_seconds``."""

        return cls(settings.output_path, TTLCache(settings.cache_ttl_seconds))

    def _document(self) -> Dict[str, Any]:
        cached = self.cache.get(self.path)
        if cached is not None:
            return cached
        with self.path.open("r", encoding="utf-8") as handle:
            document = json.load(handle)
        logger.debug("Loaded account document %s", self.path)
        self.cache.set(self.path, document)
        return document

    def _accounts(self) -> Dict[str, Any]:
        document = self._document()
        if ACCOUNTS_KEY in document:
            return document[ACCOUNTS_KEY]
        # Single-account documents carry the account at the top level.
        name = document.get("accountName")
        return {name: document} if name else {}

    def account_list(self) -> List[str]:
        document = self._document()
        if "accountList" in document:
            return list(document["accountList"])
        return list(self._accounts())

    def get_account(self, name: str) -> Dict[str, Any]:
        accounts = self._accounts()
        if name not in accounts:
            raise AccountNotFoundError(name)
        return accounts[name]

    def refresh(self) -> None:
        self.cache.invalidate(self.path)

    @staticmethod
    def validate_account(data: Dict[str, Any]) -> List[str]:
        """Return a list of problems with an account document, empty when valid."""

        issues: List[str] = []
        account = data.get("account") or {}
        if not data.get("accountName"):
            issues.append("Missing accountName")
        if not account.get("accountType"):
            issues.append("Missing accountType")
        balance = account.get("currentBalance")
        if balance is None:
            issues.append("Missing currentBalance")
        elif not isinstance(balance, (int, float)) or not math.isfinite(balance):
            issues.append("currentBalance is not a finite number")
        elif balance < 0:
            issues.append("currentBalance is negative")
        return issues


__all__ = ["AccountDataStore", "AccountNotFoundError", "TTLCache"]
