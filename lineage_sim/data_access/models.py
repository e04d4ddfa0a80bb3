"""定义家族人生模拟领域模型的 Pydantic 数据结构。

分为三部分：

* 角色与家族状态（``Character``、``GameState`` 等），可序列化持久化；
* 事件目录数据（``GameEvent``、``EventChoice``、``EventEffect``），编译后只读；
* 每次推进产生的审计日志与结果（``TickLogEntry``、``TickResult``）。

目录对象只携带本地化 key，不保存渲染后的文本。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

ROBOT_ID = "robot"
UNSKILLED_MAJOR = "Unskilled"
VOCATIONAL_DIPLOMA = "education_vocational_diploma"

# 各属性的上限；下限统一为 0
STAT_LIMITS: Dict[str, float] = {
    "iq": 200.0,
    "happiness": 100.0,
    "eq": 100.0,
    "health": 100.0,
    "skill": 100.0,
}

Replacements = Dict[str, Union[str, int, float]]
Translate = Callable[[str, str, Optional[Dict[str, Any]]], str]


def clamp_stat(stat: str, value: float) -> float:
    """将属性值限制在 ``[0, STAT_LIMITS[stat]]`` 区间。"""
    return max(0.0, min(STAT_LIMITS.get(stat, 100.0), float(value)))


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class LifePhase(str, Enum):
    """由年龄推导出的人生阶段。"""

    NEWBORN = "Newborn"
    ELEMENTARY = "Elementary"
    MIDDLE_SCHOOL = "MiddleSchool"
    HIGH_SCHOOL = "HighSchool"
    UNIVERSITY = "University"
    POST_GRADUATION = "PostGraduation"
    RETIRED = "Retired"


class CharacterStatus(str, Enum):
    """由玩家决策推导出的活动状态。"""

    IDLE = "Idle"
    IN_EDUCATION = "InEducation"
    WORKING = "Working"
    UNEMPLOYED = "Unemployed"
    INTERNSHIP = "Internship"
    VOCATIONAL_TRAINING = "VocationalTraining"
    RETIRED = "Retired"
    TRAINEE = "Trainee"


class RelationshipStatus(str, Enum):
    SINGLE = "Single"
    MARRIED = "Married"


class PetType(str, Enum):
    DOG = "Dog"
    CAT = "Cat"
    PARROT = "Parrot"
    HORSE = "Horse"
    FISH = "Fish"


class GameOverReason(str, Enum):
    VICTORY = "victory"
    DEBT = "debt"


class ActionKind(str, Enum):
    """事件效果可携带的封闭动作集合，由 ``logic_modules.actions`` 统一分派。"""

    MARRY = "MARRY"
    SPAWN_CHILDREN = "SPAWN_CHILDREN"
    DIE_OF_OLD_AGE = "DIE_OF_OLD_AGE"
    ADOPT_PET = "ADOPT_PET"
    REMOVE_PET = "REMOVE_PET"
    LOSE_JOB = "LOSE_JOB"
    PROJECT_BONUS = "PROJECT_BONUS"
    AFFECT_COUPLE = "AFFECT_COUPLE"
    AFFECT_PARTNER = "AFFECT_PARTNER"


class SimDate(BaseModel):
    """固定 360 天/年的游戏日期。"""

    day: int = Field(default=1, ge=1)
    year: int

    def ordinal(self, days_per_year: int = 360) -> int:
        return self.year * days_per_year + (self.day - 1)

    def add_days(self, days: int, days_per_year: int = 360) -> "SimDate":
        total = self.ordinal(days_per_year) + days
        return SimDate(day=total % days_per_year + 1, year=total // days_per_year)

    def is_before(self, other: "SimDate") -> bool:
        return (self.year, self.day) < (other.year, other.day)


class Stats(BaseModel):
    iq: float = 0.0
    happiness: float = 0.0
    eq: float = 0.0
    health: float = 0.0
    skill: float = 0.0

    def get(self, stat: str) -> float:
        return float(getattr(self, stat))

    def add(self, stat: str, delta: float, clamp: bool = True) -> None:
        value = self.get(stat) + delta
        setattr(self, stat, clamp_stat(stat, value) if clamp else value)


class DisplayAdjective(BaseModel):
    key: str
    year: int


class Character(BaseModel):
    """家族成员的完整状态。"""

    id: str
    name: str
    gender: Gender
    generation: int = 0
    birth_date: SimDate
    age: int = 0
    is_alive: bool = True
    death_date: Optional[SimDate] = None
    stats: Stats = Field(default_factory=Stats)
    phase: LifePhase = LifePhase.NEWBORN
    education: str = "None"
    major: Optional[str] = None
    career_track: Optional[str] = None
    career_level: int = 0
    status: CharacterStatus = CharacterStatus.IDLE
    status_end_year: Optional[int] = None
    relationship_status: RelationshipStatus = RelationshipStatus.SINGLE
    partner_id: Optional[str] = None
    children_ids: List[str] = Field(default_factory=list)
    parents_ids: List[str] = Field(default_factory=list)
    pet_id: Optional[str] = None
    is_player_character: bool = False
    mourning_until_year: Optional[int] = None
    monthly_net_income: float = 0.0
    events_this_year: int = 0
    completed_one_time_events: List[str] = Field(default_factory=list)
    current_clubs: List[str] = Field(default_factory=list)
    display_adjective: Optional[DisplayAdjective] = None
    progression_penalty: float = 0.0
    trainee_for_career: Optional[str] = None
    children_event_cooldown_until: Optional[SimDate] = None
    low_happiness_years: int = 0
    low_health_years: int = 0
    months_in_current_job_level: int = 0
    months_unemployed: int = 0


class Pet(BaseModel):
    id: str
    name: str
    type: PetType
    owner_id: str
    age: int = 0


class PurchasedAsset(BaseModel):
    id: str
    purchase_year: int


class BusinessSlot(BaseModel):
    role_key: str
    required_major: str = UNSKILLED_MAJOR
    # 家族成员 id、``ROBOT_ID`` 或空缺
    assigned_character_id: Optional[str] = None

    @property
    def is_filled(self) -> bool:
        return self.assigned_character_id is not None


class Business(BaseModel):
    id: str
    name_key: str
    type: str
    level: int = 1
    owner_id: str
    slots: List[BusinessSlot] = Field(default_factory=list)
    base_revenue: float = 0.0


class Loan(BaseModel):
    id: str
    amount: float
    due_date: SimDate


class GameLogEntry(BaseModel):
    """面向玩家的日志，只保存 key 与替换参数。"""

    year: int
    message_key: str
    replacements: Replacements = Field(default_factory=dict)
    character_id: Optional[str] = None
    event_title_key: Optional[str] = None
    stat_changes: Dict[str, float] = Field(default_factory=dict)
    fund_change: Optional[float] = None


class EventRef(BaseModel):
    """对目录事件的引用，用于当前事件与事件队列；不复制目录数据。"""

    character_id: str
    event_id: str
    replacements: Replacements = Field(default_factory=dict)


class PendingSchoolChoice(BaseModel):
    character_id: str
    new_phase: LifePhase


class PendingCharacterChoice(BaseModel):
    character_id: str


class PendingOptionsChoice(BaseModel):
    """带选项列表的决策门（专业、社团、职业）。"""

    character_id: str
    options: List[str] = Field(default_factory=list)


class PendingUnderqualifiedChoice(BaseModel):
    character_id: str
    career_track_key: str


class PendingPromotion(BaseModel):
    character_id: str
    new_level: int
    new_title_key: str
    career_track: Optional[str] = None


class GameState(BaseModel):
    """某一天的完整游戏快照。"""

    game_id: str
    family_name: str = ""
    scenario: str = "classic"
    lang: str = "en"
    content_version: int = 0
    members: Dict[str, Character] = Field(default_factory=dict)
    family_fund: float = 0.0
    purchased_assets: Dict[str, PurchasedAsset] = Field(default_factory=dict)
    pets: Dict[str, Pet] = Field(default_factory=dict)
    businesses: Dict[str, Business] = Field(default_factory=dict)
    current_date: SimDate
    game_log: List[GameLogEntry] = Field(default_factory=list)
    game_over_reason: Optional[GameOverReason] = None
    active_event: Optional[EventRef] = None
    event_queue: List[EventRef] = Field(default_factory=list)
    pending_school_choice: List[PendingSchoolChoice] = Field(default_factory=list)
    pending_university_choice: List[PendingCharacterChoice] = Field(
        default_factory=list
    )
    pending_major_choice: Optional[PendingOptionsChoice] = None
    pending_club_choice: Optional[PendingOptionsChoice] = None
    pending_career_choice: Optional[PendingOptionsChoice] = None
    pending_underqualified_choice: Optional[PendingUnderqualifiedChoice] = None
    pending_loan_choice: bool = False
    pending_promotion: Optional[PendingPromotion] = None
    active_loans: List[Loan] = Field(default_factory=list)
    total_members: int = 0
    total_children_born: int = 0
    event_cooldown_until: Optional[SimDate] = None
    monthly_net_change: float = 0.0

    def living_members(self) -> List[Character]:
        return [member for member in self.members.values() if member.is_alive]

    def has_blocking_gate(self) -> bool:
        """学校、大学、职业或资质不足决策门任一未决时返回 True。"""
        return bool(
            self.pending_school_choice
            or self.pending_university_choice
            or self.pending_career_choice is not None
            or self.pending_underqualified_choice is not None
        )

    def add_log(
        self,
        message_key: str,
        replacements: Optional[Replacements] = None,
        **extra: Any,
    ) -> GameLogEntry:
        entry = GameLogEntry(
            year=self.current_date.year,
            message_key=message_key,
            replacements=dict(replacements or {}),
            **extra,
        )
        self.game_log.append(entry)
        return entry


# ---------------------------------------------------------------------------
# 事件目录（编译后只读）
# ---------------------------------------------------------------------------


class EventCondition(BaseModel):
    """声明式的事件/选项资格条件，由 ``events.conditions`` 统一求值。

    确定性条件先判断，概率条件（``chance``、老年风险）最后掷骰，
    这样只有在其余条件都满足时才消耗随机数。
    """

    model_config = ConfigDict(frozen=True)

    min_age: Optional[int] = None
    max_age: Optional[int] = None
    gender: Optional[Gender] = None
    relationship_status: Optional[RelationshipStatus] = None
    statuses: Tuple[CharacterStatus, ...] = ()
    has_pet: Optional[bool] = None
    has_partner: Optional[bool] = None
    has_career: Optional[bool] = None
    has_grandchildren: Optional[bool] = None
    max_children: Optional[int] = None
    respect_children_cooldown: bool = False
    min_stats: Dict[str, float] = Field(default_factory=dict)
    min_fund: Optional[float] = None
    chance: Optional[float] = None
    old_age_start: Optional[int] = None
    old_age_rate: float = 0.0


class EventTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_key: str
    chance: float = 1.0
    retarget: Optional[str] = None


class EffectOutcome(BaseModel):
    """动态效果的一个加权结果分支。"""

    model_config = ConfigDict(frozen=True)

    weight: float = Field(gt=0.0)
    stat_changes: Dict[str, float] = Field(default_factory=dict)
    fund_change: float = 0.0
    log_key: str
    triggers: Tuple[EventTrigger, ...] = ()


class EventEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    stat_changes: Dict[str, float] = Field(default_factory=dict)
    fund_change: float = 0.0
    log_key: str
    triggers: Tuple[EventTrigger, ...] = ()
    action: Optional[ActionKind] = None
    # 动作参数：AFFECT_* 为属性增量，PROJECT_BONUS 为 chance/amount
    action_params: Dict[str, float] = Field(default_factory=dict)
    outcomes: Tuple[EffectOutcome, ...] = ()


class EventChoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text_key: str
    effect: EventEffect
    condition: Optional[EventCondition] = None


class GameEvent(BaseModel):
    """编译后的目录事件。``id`` 为稳定 id，``key`` 为内容中声明的 id。"""

    model_config = ConfigDict(frozen=True)

    id: str
    key: str
    title_key: str
    description_key: str
    phases: Tuple[LifePhase, ...] = ()
    choices: Tuple[EventChoice, ...] = ()
    trigger_only: bool = False
    milestone: bool = False
    one_time: bool = False
    apply_to_all: bool = False
    allowed_relationship_statuses: Tuple[RelationshipStatus, ...] = ()
    condition: Optional[EventCondition] = None

    def choice(self, choice_id: str) -> Optional[EventChoice]:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None

    def render(
        self,
        translate: Translate,
        lang: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """按需把 key 渲染为展示文本，目录数据本身保持不变。"""
        return {
            "id": self.id,
            "title": translate(self.title_key, lang, params),
            "description": translate(self.description_key, lang, params),
            "choices": [
                {"id": choice.id, "label": translate(choice.text_key, lang, params)}
                for choice in self.choices
            ],
        }


class EventChoiceDraft(BaseModel):
    text_key: str
    effect: EventEffect
    condition: Optional[EventCondition] = None


class EventDraft(BaseModel):
    """内容作者编写的事件草稿，尚未分配稳定 id。"""

    id: str
    title_key: str
    description_key: str
    phases: List[LifePhase] = Field(default_factory=list)
    choices: List[EventChoiceDraft] = Field(default_factory=list)
    trigger_only: bool = False
    milestone: bool = False
    one_time: bool = False
    apply_to_all: bool = False
    allowed_relationship_statuses: List[RelationshipStatus] = Field(
        default_factory=list
    )
    condition: Optional[EventCondition] = None


# ---------------------------------------------------------------------------
# Tick 审计与结果
# ---------------------------------------------------------------------------


class TickLogEntry(BaseModel):
    """单日推进过程中各子模块产生的运行日志。"""

    year: int
    day: int
    message: str
    context: Dict[str, float | int | str] = Field(default_factory=dict)

    @classmethod
    def at(cls, date: SimDate, message: str, **context: Any) -> "TickLogEntry":
        return cls(
            year=date.year,
            day=date.day,
            message=message,
            context={k: v for k, v in context.items() if v is not None},
        )


class TickResult(BaseModel):
    """单日推进结果，包含新的游戏快照与运行日志。"""

    state: GameState
    logs: List[TickLogEntry] = Field(default_factory=list)
    new_month: bool = False
    new_year: bool = False
