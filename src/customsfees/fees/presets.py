"""Preset rule templates for common customs fee scenarios."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Tuple

from customsfees.fees.models import coerce_rules
from customsfees.fees.rule_store import RuleStore

logger = logging.getLogger(__name__)


class UnknownPresetError(KeyError):
    """Raised when a preset id is not defined."""


@dataclass(frozen=True)
class PresetTemplate:
    preset_id: str
    name: str
    description: str
    rules: Tuple[Dict[str, Any], ...]


def _data_root(base_path: str | None = None) -> Path:
    if base_path:
        return Path(base_path)
    return Path(__file__).resolve().parents[1] / "data" / "presets"


@lru_cache(maxsize=None)
def _load_presets(base_path: str | None) -> Tuple[PresetTemplate, ...]:
    path = _data_root(base_path) / "rule_presets.json"
    if not path.exists():
        logger.warning("Preset file %s not found", path)
        return ()
    payload = json.loads(path.read_text(encoding="utf-8"))
    entries = payload.get("presets", []) if isinstance(payload, dict) else payload
    presets = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("preset_id"):
            continue
        presets.append(
            PresetTemplate(
                preset_id=str(entry["preset_id"]),
                name=str(entry.get("name") or entry["preset_id"]),
                description=str(entry.get("description") or ""),
                rules=tuple(dict(rule) for rule in entry.get("rules", []) if isinstance(rule, dict)),
            )
        )
    return tuple(presets)


def list_presets(data_root: str | None = None) -> Tuple[PresetTemplate, ...]:
    return _load_presets(data_root)


def get_preset(preset_id: str, data_root: str | None = None) -> PresetTemplate:
    for preset in _load_presets(data_root):
        if preset.preset_id == preset_id:
            return preset
    raise UnknownPresetError(preset_id)


def apply_preset(store: RuleStore, preset_id: str, *, replace: bool = False, data_root: str | None = None) -> int:
    """Write a preset's rules into *store*; appends unless *replace* is set."""

    preset = get_preset(preset_id, data_root)
    rules = coerce_rules(preset.rules)
    count = store.replace_all(rules, append=not replace)
    logger.info("Applied preset %s (%d rules, replace=%s)", preset_id, count, replace)
    return count
