"""Pydantic models for store records and derived chapter views.

Store records (`Chapter`, `MemberProfile`, `MetricEntry`, `TradeRecord`) are
validated as they are read. Derived views (`ChapterStats`, `ChapterMember`,
`ChapterTrade`, `ChapterActivity`, ...) are built fresh per call and never
written back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    computed_field,
    model_validator,
)


def _as_utc(value: datetime) -> datetime:
    # naive timestamps from the store are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class MetricType(str, Enum):
    PARTICIPATION = "participation"
    LEARNING = "learning"
    ACTIVITY = "activity"
    NETWORKING = "networking"
    TRADE = "trade"


METRIC_TYPES: tuple[str, ...] = tuple(m.value for m in MetricType)


class TradeStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"
    FAILED = "failed"


# =========================================================
# STORE RECORDS
# =========================================================

class Chapter(BaseModel):
    """An organizational sub-unit with its own members."""
    model_config = ConfigDict(extra="ignore")
    id: str
    name: str
    leader_id: str | None = None
    created_at: UtcDatetime | None = None


class MemberRef(BaseModel):
    """Display pair used wherever a member is referenced from another record."""
    model_config = ConfigDict(extra="forbid", frozen=True)
    full_name: str
    business_name: str


UNKNOWN_MEMBER = MemberRef(full_name="Unknown", business_name="Unknown")


class MemberProfile(BaseModel):
    """A member profile row.

    Attributes:
        id: Profile id (same as the auth user id).
        chapter_id: Owning chapter, ``None`` for unattached profiles.
        created_at: Join timestamp.
    """
    model_config = ConfigDict(extra="ignore")
    id: str
    email: str
    full_name: str | None = None
    business_name: str | None = None
    phone: str | None = None
    role: str | None = None
    chapter_id: str | None = None
    created_at: UtcDatetime | None = None

    def ref(self) -> MemberRef:
        return MemberRef(
            full_name=self.full_name or "",
            business_name=self.business_name or "",
        )


class MetricEntry(BaseModel):
    """A single metric submission by a member."""
    model_config = ConfigDict(extra="ignore")
    id: str
    user_id: str
    chapter_id: str
    metric_type: MetricType
    value: float = Field(..., ge=0)
    description: str | None = None
    created_at: UtcDatetime


class TradeRecord(BaseModel):
    """A trade row as stored. New trades start in ``pending``."""
    model_config = ConfigDict(extra="ignore")
    id: str
    user_id: str
    chapter_id: str
    amount: float = Field(..., ge=0)
    description: str | None = None
    status: TradeStatus = TradeStatus.PENDING
    source_member_id: str | None = None
    beneficiary_member_id: str | None = None
    mpesa_reference: str | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime | None = None


# =========================================================
# MEMBER SCORES
# =========================================================

class ScoreWeights(BaseModel):
    """Weights of the member composite score, one per metric type."""
    model_config = ConfigDict(extra="forbid", frozen=True)
    participation: float = Field(1.0, ge=0)
    learning: float = Field(1.0, ge=0)
    activity: float = Field(1.0, ge=0)
    networking: float = Field(1.0, ge=0)
    trade: float = Field(1.0, ge=0)


class MemberScores(BaseModel):
    """Per-member metric totals and their weighted composite.

    `total` is derived from the components and the weights. A `total` key in
    the input (as produced by `model_dump`) is dropped and recomputed, so dumped
    views validate back but the value can never be set directly.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)
    participation: float = 0.0
    learning: float = 0.0
    activity: float = 0.0
    networking: float = 0.0
    trade: float = 0.0
    weights: ScoreWeights = Field(default_factory=ScoreWeights, exclude=True, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _drop_total(cls, data: object) -> object:
        if isinstance(data, dict) and "total" in data:
            return {k: v for k, v in data.items() if k != "total"}
        return data

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        w = self.weights
        return (
            w.participation * self.participation
            + w.learning * self.learning
            + w.activity * self.activity
            + w.networking * self.networking
            + w.trade * self.trade
        )


# =========================================================
# DERIVED VIEWS
# =========================================================

class ChapterMember(BaseModel):
    """A chapter participant with activity and score annotations."""
    model_config = ConfigDict(extra="forbid")
    id: str
    full_name: str | None
    business_name: str | None
    email: str
    phone: str | None
    role: str | None
    created_at: UtcDatetime | None
    last_activity: UtcDatetime | None = None
    is_inactive: bool
    metrics: MemberScores | None = None


class ChapterTrade(BaseModel):
    """A trade with payer/payee resolved to display references."""
    model_config = ConfigDict(extra="forbid")
    id: str
    amount: float
    description: str | None
    status: TradeStatus
    created_at: UtcDatetime
    user: MemberRef
    source_member: MemberRef | None = None
    beneficiary_member: MemberRef | None = None
    mpesa_reference: str | None = None


class MonthlyGrowth(BaseModel):
    """Signed percentage change against the preceding calendar month."""
    model_config = ConfigDict(extra="forbid", frozen=True)
    members: float = 0.0
    participation: float = 0.0
    learning_hours: float = 0.0
    revenue: float = 0.0


class ChapterStats(BaseModel):
    """Chapter-wide snapshot for a time window.

    Attributes:
        total_members: Live member count at query time.
        avg_participation: Mean member participation score (0-100).
        total_learning_hours: Sum of learning submissions in the window.
        total_revenue: Sum of paid trade amounts in the window.
        monthly_growth: Deltas against the previous calendar month.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)
    chapter_id: str
    window_start: UtcDatetime
    window_end: UtcDatetime
    total_members: int = Field(..., ge=0)
    avg_participation: float = Field(..., ge=0, le=100)
    total_learning_hours: float = Field(..., ge=0)
    total_revenue: float = Field(..., ge=0)
    monthly_growth: MonthlyGrowth = Field(default_factory=MonthlyGrowth)


class _ActivityBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    id: str
    description: str
    created_at: UtcDatetime
    user: MemberRef


class MetricActivity(_ActivityBase):
    type: Literal["metric"] = "metric"
    metric_type: MetricType
    value: float


class TradeActivity(_ActivityBase):
    type: Literal["trade"] = "trade"
    value: float


class MemberJoinActivity(_ActivityBase):
    type: Literal["member_join"] = "member_join"


ChapterActivity = Annotated[
    Union[MetricActivity, TradeActivity, MemberJoinActivity],
    Field(discriminator="type"),
]

ActivityFeed = TypeAdapter(list[ChapterActivity])


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")
    rank: int = Field(..., ge=1)
    user_id: str
    full_name: str
    business_name: str
    scores: MemberScores


class PendingAction(BaseModel):
    """An item on the chapter leader's to-do list."""
    model_config = ConfigDict(extra="forbid")
    type: str
    description: str
    priority: Literal["high", "medium"]
    count: int = Field(..., ge=0)


class MemberPage(BaseModel):
    model_config = ConfigDict(extra="forbid")
    members: list[ChapterMember]
    total_count: int = Field(..., ge=0)


class TradePage(BaseModel):
    model_config = ConfigDict(extra="forbid")
    trades: list[ChapterTrade]
    total_count: int = Field(..., ge=0)
