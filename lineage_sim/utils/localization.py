"""默认的本地化实现：从 ``config/strings/<lang>.yaml`` 查表并填充占位符。

引擎本身只保存 key；展示层在需要时调用 :func:`translate`。缺失的 key
依次回退到英文表与 key 本身。
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..data_access.models import Character, LifePhase

FALLBACK_LANG = "en"


def _strings_dir() -> Path:
    return Path(__file__).resolve().parents[2] / "config" / "strings"


@lru_cache(maxsize=8)
def load_string_table(lang: str) -> Dict[str, str]:
    path = _strings_dir() / f"{lang}.yaml"
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    return {str(key): str(value) for key, value in raw.items()}


def _lookup(key: str, lang: str) -> Optional[str]:
    value = load_string_table(lang).get(key)
    if value is None and lang != FALLBACK_LANG:
        value = load_string_table(FALLBACK_LANG).get(key)
    return value


def translate(key: str, lang: str, params: Optional[Dict[str, Any]] = None) -> str:
    text = _lookup(key, lang)
    if text is None:
        text = key
    for name, value in (params or {}).items():
        # 替换值本身也可能是 key（例如死因），先翻译再填充
        rendered = _lookup(value, lang) if isinstance(value, str) else None
        text = text.replace("{" + name + "}", rendered or str(value))
    return text


def display_name(character: Character, lang: str, translate_fn=translate) -> str:
    if not character.is_alive:
        return character.name
    if character.mourning_until_year:
        adjective = "adjective_grieving"
    elif character.phase in (LifePhase.NEWBORN, LifePhase.ELEMENTARY):
        adjective = "adjective_innocent"
    elif character.display_adjective is not None:
        adjective = character.display_adjective.key
    else:
        adjective = "adjective_normal"
    return f"{character.name} {translate_fn(adjective, lang)}".strip()
