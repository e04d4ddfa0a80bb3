"""提供家族人生模拟所需的配置模型与读取工具。

所有金额均以游戏内统一货币计；职业薪水与养老金为「年额」，在月度结算时
再除以 12。日历固定为 360 天/年、30 天/月，月初判定为 ``day % 30 == 1``。
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field


class SimulationParameters(BaseModel):
    """定义仿真运行的时间尺度与初始参数。"""

    name: str = Field(default="default_family")
    seed: int = Field(default=42)
    days_per_year: int = Field(default=360, ge=1)
    days_per_month: int = Field(default=30, ge=1)
    initial_year: int = Field(default=2024)
    initial_funds: float = Field(default=100000.0)
    content_version: int = Field(default=1, ge=0)
    # 后台 ticker 两次推进之间的间隔（秒）
    tick_interval_seconds: float = Field(default=0.05, gt=0.0)
    default_lang: str = Field(default="en")


class EconomyConfig(BaseModel):
    """月度结算与家族企业使用的经济常量。"""

    pension_annual: float = Field(default=4200.0, ge=0.0)
    trainee_salary_annual: float = Field(default=4800.0, ge=0.0)
    internship_stipend_annual: float = Field(default=4800.0, ge=0.0)
    internship_duration_years: int = Field(default=1, ge=1)
    vocational_cost: float = Field(default=40000.0, ge=0.0)
    vocational_duration_years: int = Field(default=3, ge=1)
    vocational_skill_gain: float = Field(
        default=40.0, description="Total skill gained over the whole vocational course"
    )
    vocational_eq_gain: float = Field(default=10.0)
    business_worker_base_salary: float = Field(default=500.0, ge=0.0)
    business_worker_skill_multiplier: float = Field(default=15.0, ge=0.0)
    robot_monthly_cost: float = Field(default=700.0, ge=0.0)
    robot_skill: float = Field(default=30.0, ge=0.0)
    cost_of_living_fluctuation: float = Field(default=600.0, ge=0.0)
    # 按人生阶段划分的年度生活成本基数
    cost_of_living: Dict[str, float] = Field(default_factory=dict)
    unemployed_seek_job_after_months: int = Field(default=12, ge=0)
    unemployed_seek_job_chance: float = Field(default=0.2, ge=0.0, le=1.0)
    promotion_stall_months: int = Field(default=13, ge=1)
    promotion_stall_happiness_penalty: float = Field(default=3.0)
    trainee_monthly_stat_gain: float = Field(default=0.5, ge=0.0)
    business_upgrade_cost_ratio: float = Field(default=0.75, ge=0.0)
    business_max_level: int = Field(default=2, ge=1)
    min_working_age: int = Field(default=18, ge=0)


class LifeStageConfig(BaseModel):
    """人生阶段、死亡规则与事件节奏相关参数。"""

    # 阶段上限年龄（含），按顺序匹配，超过最后一项即为 Retired
    phase_max_ages: Dict[str, int] = Field(
        default_factory=lambda: {
            "Newborn": 5,
            "Elementary": 11,
            "MiddleSchool": 15,
            "HighSchool": 18,
            "University": 22,
            "PostGraduation": 59,
        }
    )
    mourning_years: int = Field(default=3, ge=0)
    mourning_daily_happiness_loss: float = Field(default=0.1, ge=0.0)
    low_stat_threshold: float = Field(default=10.0)
    low_stat_death_years: int = Field(default=2, ge=1)
    retirement_age: int = Field(default=60)
    university_age: int = Field(default=19)
    health_decay_after_50: float = Field(default=0.005, ge=0.0)
    health_decay_after_70: float = Field(default=0.01, ge=0.0)
    victory_generation: int = Field(default=6, ge=1)
    max_events_per_year: int = Field(default=2, ge=1)
    small_family_size: int = Field(default=3, ge=1)
    small_family_cooldown_days: int = Field(default=120, ge=0)
    large_family_cooldown_days: int = Field(default=180, ge=0)
    initial_event_cooldown_days: int = Field(default=30, ge=0)
    children_event_cooldown_years: int = Field(default=3, ge=0)
    max_children: int = Field(default=6, ge=0)
    twins_unlock_children: int = Field(default=2, ge=0)
    twins_chance: float = Field(default=0.4, ge=0.0, le=1.0)
    triplets_unlock_children: int = Field(default=3, ge=0)
    triplets_chance: float = Field(default=0.1, ge=0.0, le=1.0)
    max_club_options: int = Field(default=4, ge=1)
    max_career_options: int = Field(default=5, ge=1)
    max_major_options: int = Field(default=5, ge=1)


class CareerLevel(BaseModel):
    title_key: str
    salary: float
    skill_required: float = 0.0


class CareerTrack(BaseModel):
    """职业阶梯中的一条路线。"""

    name_key: str
    description_key: str = ""
    required_major: Optional[str] = None
    iq_required: float = 0.0
    eq_required: float = 0.0
    levels: List[CareerLevel] = Field(default_factory=list)


class UniversityMajor(BaseModel):
    name_key: str
    description_key: str = ""
    cost: float = 0.0
    effects: Dict[str, float] = Field(default_factory=dict)


class SchoolOption(BaseModel):
    name_key: str
    cost: float = 0.0
    effects: Dict[str, float] = Field(default_factory=dict)
    log_key: str = ""


class Club(BaseModel):
    id: str
    name_key: str
    min_age: int = 0
    min_stats: Dict[str, float] = Field(default_factory=dict)
    effects: Dict[str, float] = Field(default_factory=dict)


class PetDefinition(BaseModel):
    name_key: str
    monthly_cost: float = 0.0
    effects: Dict[str, float] = Field(default_factory=dict)
    names: List[str] = Field(default_factory=list)


class BusinessSlotDefinition(BaseModel):
    role_key: str
    required_major: str = "Unskilled"


class BusinessDefinition(BaseModel):
    type: str
    tier: int = 1
    name_key: str
    cost: float
    base_revenue: float
    cost_of_goods_sold: float = Field(ge=0.0, le=1.0)
    fixed_monthly_cost: float = 0.0
    slots: List[BusinessSlotDefinition] = Field(default_factory=list)
    upgrade_slots: List[BusinessSlotDefinition] = Field(default_factory=list)


class AssetDefinition(BaseModel):
    type: str
    tier: int = 1
    name_key: str
    cost: float
    # 购买时一次性按比例提升玩家角色的属性，例如 0.01 表示 +1%
    effects: Dict[str, float] = Field(default_factory=dict)


class CatalogConfig(BaseModel):
    """静态目录数据：职业、专业、学校、社团、宠物、企业与资产。"""

    male_names: List[str] = Field(default_factory=lambda: ["Alex"])
    female_names: List[str] = Field(default_factory=lambda: ["Sam"])
    career_ladder: Dict[str, CareerTrack] = Field(default_factory=dict)
    majors: List[UniversityMajor] = Field(default_factory=list)
    school_options: Dict[str, List[SchoolOption]] = Field(default_factory=dict)
    clubs: List[Club] = Field(default_factory=list)
    pets: Dict[str, PetDefinition] = Field(default_factory=dict)
    businesses: Dict[str, BusinessDefinition] = Field(default_factory=dict)
    assets: Dict[str, AssetDefinition] = Field(default_factory=dict)

    def major(self, name_key: Optional[str]) -> Optional[UniversityMajor]:
        for major in self.majors:
            if major.name_key == name_key:
                return major
        return None


class GameConfig(BaseModel):
    """完整的游戏配置对象，包含仿真、经济、人生阶段参数与目录数据。"""

    simulation: SimulationParameters = Field(default_factory=SimulationParameters)
    economy: EconomyConfig = Field(default_factory=EconomyConfig)
    life_stage: LifeStageConfig = Field(default_factory=LifeStageConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)


def _load_yaml_config(path: Path) -> dict:
    """读取并解析给定路径的 YAML 配置文件。"""
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def default_config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "config" / "game_settings.yaml"


def load_game_config(config_path: Optional[Path] = None) -> GameConfig:
    """从 YAML 文件加载游戏配置。

    Parameters
    ----------
    config_path:
        可选的 YAML 配置文件路径。若未指定，则默认读取仓库根目录下
        ``config/game_settings.yaml``。
    """

    if config_path is None:
        config_path = default_config_path()

    raw = _load_yaml_config(config_path)
    return GameConfig.model_validate(raw)


@lru_cache(maxsize=1)
def get_game_config(config_path: Optional[Path] = None) -> GameConfig:
    """返回解析后的 :class:`GameConfig`，并使用 LRU 缓存避免重复读取。"""

    return load_game_config(config_path=config_path)
