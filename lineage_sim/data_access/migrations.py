"""存档迁移：把旧版本快照逐步升级到当前 ``content_version``。

迁移表以「源版本」为键，每一步返回升级后的原始字典。加载时先补齐
旧存档缺失的字段，再按版本号依次执行迁移；迁移链断裂时抛出
:class:`MigrationError`，由宿主丢弃该存档。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from pydantic import ValidationError

from .models import GameState

logger = logging.getLogger(__name__)

RawState = Dict[str, Any]
Migration = Callable[[RawState], RawState]

CHARACTER_COUNTERS = (
    "low_happiness_years",
    "low_health_years",
    "months_in_current_job_level",
    "months_unemployed",
    "events_this_year",
)


class MigrationError(RuntimeError):
    """存档无法升级到当前版本。"""

    def __init__(self, from_version: int, target_version: int, reason: str) -> None:
        super().__init__(
            f"Cannot migrate save from version {from_version} to {target_version}: {reason}"
        )
        self.from_version = from_version
        self.target_version = target_version
        self.reason = reason


def backfill_legacy_fields(raw: RawState) -> RawState:
    """补齐旧存档缺失的计数器与集合字段，不改变版本号。"""
    for member in (raw.get("members") or {}).values():
        for counter in CHARACTER_COUNTERS:
            if member.get(counter) is None:
                member[counter] = 0
        if member.get("completed_one_time_events") is None:
            member["completed_one_time_events"] = []

    assets = raw.get("purchased_assets")
    if isinstance(assets, list):
        raw["purchased_assets"] = {
            asset["id"]: asset for asset in assets if isinstance(asset, dict) and "id" in asset
        }
    elif assets is None:
        raw["purchased_assets"] = {}

    if raw.get("businesses") is None:
        raw["businesses"] = raw.pop("family_businesses", None) or {}
    return raw


def _v0_to_v1(raw: RawState) -> RawState:
    raw["content_version"] = 1
    return raw


MIGRATIONS: Dict[int, Migration] = {
    0: _v0_to_v1,
}


def _check_shape(raw: RawState, target_version: int) -> int:
    """校验顶层容器类型并返回存档版本号。"""
    version = raw.get("content_version") or 0
    if isinstance(version, bool) or not isinstance(version, int):
        raise MigrationError(-1, target_version, "content_version is not an integer")
    for key in ("members", "businesses", "family_businesses", "pets"):
        value = raw.get(key)
        if value is not None and not isinstance(value, dict):
            raise MigrationError(version, target_version, f"'{key}' is not a mapping")
    assets = raw.get("purchased_assets")
    if assets is not None and not isinstance(assets, (dict, list)):
        raise MigrationError(version, target_version, "'purchased_assets' has an unknown shape")
    return version


def apply_migrations(
    raw: RawState,
    target_version: int,
    migrations: Dict[int, Migration] = MIGRATIONS,
) -> GameState:
    if not isinstance(raw, dict):
        raise MigrationError(-1, target_version, "snapshot is not a mapping")
    start = _check_shape(raw, target_version)
    try:
        state = backfill_legacy_fields(dict(raw))
    except (AttributeError, TypeError, ValueError) as exc:
        raise MigrationError(start, target_version, "legacy fields are malformed") from exc
    version = start
    if version > target_version:
        raise MigrationError(start, target_version, "save is newer than this build")

    while version < target_version:
        step = migrations.get(version)
        if step is None:
            raise MigrationError(start, target_version, f"no migration from version {version}")
        state = step(state)
        next_version = int(state.get("content_version") or 0)
        if next_version <= version:
            raise MigrationError(start, target_version, f"migration {version} did not advance")
        version = next_version
        logger.debug("Migrated save to content version %d", version)

    try:
        return GameState.model_validate(state)
    except ValidationError as exc:
        raise MigrationError(start, target_version, "snapshot failed validation") from exc
