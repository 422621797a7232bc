from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from customsfees.caching.base import FeeCache
from customsfees.fees.models import FeeRuleModel, coerce_rules

logger = logging.getLogger(__name__)

SNAPSHOT_CACHE_KEY = "rules:snapshot"


class RuleStoreError(RuntimeError):
    """Raised for invalid rule store operations."""


def _default_path() -> Path:
    base = Path(os.getenv("CUSTOMS_FEES_DATA_ROOT", "."))
    return base / "data" / "rules.json"


def _validate_record(record: Mapping[str, Any] | FeeRuleModel) -> Dict[str, Any]:
    if isinstance(record, FeeRuleModel):
        return record.to_record()
    try:
        return FeeRuleModel.from_record(record).to_record()
    except ValidationError as exc:
        raise RuleStoreError(f"Invalid rule: {exc.errors(include_url=False)}") from exc


class RuleStore:
    """Thread-safe JSON-backed ordered rule list.

    Records are persisted in canonical form. ``snapshot()`` returns an
    immutable tuple of validated rules; when a cache is supplied the raw
    records are cached and every mutation invalidates them.
    """

    def __init__(self, path: Path | None = None, cache: Optional[FeeCache] = None):
        self.path = path or _default_path()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.cache = cache
        self._lock = threading.Lock()
        self._records: List[Dict[str, Any]] = []
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with self._lock:
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8") or "[]")
            except json.JSONDecodeError as exc:
                raise RuleStoreError(f"Rule file {self.path} is not valid JSON: {exc}") from exc
            if isinstance(payload, dict):
                payload = payload.get("rules", [])
            if not isinstance(payload, list):
                raise RuleStoreError(f"Rule file {self.path} must contain a list of rules")
            self._records = [dict(entry) for entry in payload if isinstance(entry, dict)]

    def _persist(self, records: List[Dict[str, Any]]) -> None:
        """Write *records* to disk, then adopt them as the in-memory list."""

        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(records, handle, indent=2, sort_keys=True, ensure_ascii=False)
            handle.write("\n")
        self._records = records
        if self.cache is not None:
            self.cache.invalidate(SNAPSHOT_CACHE_KEY)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._records):
            raise RuleStoreError(f"Rule {index} not found")

    def records(self) -> List[Dict[str, Any]]:
        """Return a copy of the stored raw records."""
        with self._lock:
            return [dict(record) for record in self._records]

    def snapshot(self) -> Tuple[FeeRuleModel, ...]:
        if self.cache is not None:
            cached = self.cache.get(SNAPSHOT_CACHE_KEY)
            if isinstance(cached, list):
                return coerce_rules(cached)
        records = self.records()
        if self.cache is not None:
            self.cache.set(SNAPSHOT_CACHE_KEY, records)
        return coerce_rules(records)

    get_rules = snapshot

    def get(self, index: int) -> Optional[FeeRuleModel]:
        for rule in self.snapshot():
            if rule.rule_id == index:
                return rule
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def save(self, record: Mapping[str, Any] | FeeRuleModel, index: Optional[int] = None) -> Tuple[int, FeeRuleModel]:
        """Replace the rule at *index*, or append when *index* is None or unknown."""

        canonical = _validate_record(record)
        with self._lock:
            records = list(self._records)
            if index is not None and 0 <= index < len(records):
                records[index] = canonical
            else:
                records.append(canonical)
                index = len(records) - 1
            self._persist(records)
        logger.info("Saved customs fee rule %d", index)
        return index, FeeRuleModel.from_record(canonical).model_copy(update={"rule_id": index})

    def delete(self, index: int) -> None:
        with self._lock:
            self._check_index(index)
            self._persist(self._records[:index] + self._records[index + 1 :])
        logger.info("Deleted customs fee rule %d", index)

    def reorder(self, order: Sequence[int]) -> None:
        """Reorder rules; *order* must be a permutation of the current indices."""

        with self._lock:
            if sorted(order) != list(range(len(self._records))):
                raise RuleStoreError("Reorder requires a permutation of all rule indices")
            self._persist([self._records[position] for position in order])

    def clear(self) -> None:
        with self._lock:
            self._persist([])

    def replace_all(self, records: Iterable[Mapping[str, Any] | FeeRuleModel], append: bool = False) -> int:
        """Validate and store *records*; returns the number of rules written."""

        canonical = [_validate_record(record) for record in records]
        with self._lock:
            self._persist((self._records + canonical) if append else canonical)
        return len(canonical)

    def export_json(self) -> str:
        return json.dumps({"rules": self.records()}, indent=2, sort_keys=True, ensure_ascii=False)

    def import_json(self, text: str, append: bool = False) -> int:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RuleStoreError(f"Import payload is not valid JSON: {exc}") from exc
        if isinstance(payload, dict):
            payload = payload.get("rules")
        if not isinstance(payload, list) or not payload:
            raise RuleStoreError("No valid rules found in import payload")
        if not all(isinstance(entry, dict) for entry in payload):
            raise RuleStoreError("Every imported rule must be a JSON object")
        count = self.replace_all(payload, append=append)
        logger.info("Imported %d customs fee rules (append=%s)", count, append)
        return count


_DEFAULT_STORE: Optional[RuleStore] = None


def get_default_rule_store(path: Path | None = None, cache: Optional[FeeCache] = None) -> RuleStore:
    """Return a singleton rule store."""

    global _DEFAULT_STORE
    target = path or _default_path()
    if _DEFAULT_STORE is None or _DEFAULT_STORE.path != target:
        _DEFAULT_STORE = RuleStore(target, cache=cache)
    return _DEFAULT_STORE
