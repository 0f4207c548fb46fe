"""Pydantic schemas shared across the API."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field


class RelationType(str, Enum):
    MOR = "Mor"
    FAR = "Far"
    UNDERVISER = "Underviser"
    RESSOURCEPERSON = "Ressourceperson"


class DisplayType(str, Enum):
    NUMBERS = "numbers"
    SMILEYS = "smileys"
    PERCENTAGE = "percentage"


class SmileyType(str, Enum):
    EMOJIS = "emojis"
    SIMPLE = "simple"
    SUBTLE = "subtle"


class ToolType(str, Enum):
    BAROMETER = "barometer"
    DAGENS_SMILEY = "dagens-smiley"
    SENGETIDER = "sengetider"


class AccessScope(str, Enum):
    """Row kinds that carry a per-user visibility list."""

    BAROMETER = "barometer"
    DAGENS_SMILEY = "dagens-smiley"
    SENGETIDER = "sengetider"
    INDSATSTRAPPE = "indsatstrappe"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class NotificationType(str, Enum):
    INVITATION_RECEIVED = "invitation_received"
    INVITATION_ACCEPTED = "invitation_accepted"
    CHILD_ADDED = "child_added"
    USER_JOINED_CHILD = "user_joined_child"
    TOOL_ENTRY = "tool_entry"
    SYSTEM = "system"


class User(BaseModel):
    id: int
    stack_auth_id: str
    email: str
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Child(BaseModel):
    id: int
    name: str
    slug: str
    created_by: int
    created_at: datetime
    updated_at: datetime


class UserChildRelation(BaseModel):
    id: int
    user_id: int
    child_id: int
    relation: RelationType
    custom_relation_name: Optional[str] = None
    is_administrator: bool = False
    created_at: datetime
    updated_at: datetime


class ChildWithRelation(Child):
    relation: RelationType
    custom_relation_name: Optional[str] = None
    is_administrator: bool = False


class ChildUser(BaseModel):
    """A member of a child's circle, joined with the relation row."""

    id: int
    email: str
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    relation: RelationType
    custom_relation_name: Optional[str] = None
    is_administrator: bool = False
    joined_at: datetime


class AccessUser(BaseModel):
    id: int
    display_name: Optional[str] = None
    email: str


class Barometer(BaseModel):
    id: int
    child_id: int
    created_by: int
    topic: str
    description: Optional[str] = None
    scale_min: int
    scale_max: int
    display_type: DisplayType = DisplayType.NUMBERS
    smiley_type: Optional[SmileyType] = None
    is_public: bool = True
    accessible_user_ids: List[int] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class BarometerEntry(BaseModel):
    id: int
    barometer_id: int
    recorded_by: int
    recorded_by_name: Optional[str] = None
    entry_date: date
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class DagensSmiley(BaseModel):
    id: int
    child_id: int
    created_by: int
    topic: str
    description: Optional[str] = None
    is_public: bool = True
    accessible_user_ids: List[int] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class DagensSmileyEntry(BaseModel):
    id: int
    smiley_id: int
    recorded_by: int
    recorded_by_name: Optional[str] = None
    entry_date: date
    selected_emoji: str
    reasoning: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Sengetider(BaseModel):
    id: int
    child_id: int
    created_by: int
    description: Optional[str] = None
    target_bedtime: Optional[str] = None
    is_public: bool = True
    accessible_user_ids: List[int] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SengetiderEntry(BaseModel):
    id: int
    sengetider_id: int
    recorded_by: int
    recorded_by_name: Optional[str] = None
    entry_date: date
    actual_bedtime: Optional[str] = None
    puttetid: Optional[str] = None
    sov_kl: Optional[str] = None
    vaagnede: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StepPeriod(BaseModel):
    id: int
    step_id: int
    start_date: datetime
    end_date: Optional[datetime] = None
    activated_by: Optional[int] = None
    deactivated_by: Optional[int] = None
    created_at: datetime


class LinkedEntry(BaseModel):
    id: int
    step_id: int
    entry_type: ToolType
    entry_id: int
    notes: Optional[str] = None
    created_at: datetime


class IndsatsStep(BaseModel):
    id: int
    plan_id: int
    step_number: int
    title: str
    description: Optional[str] = None
    goal: Optional[str] = Field(default=None, description="Målsætning for the step")
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    completed_by: Optional[int] = None
    periods: List[StepPeriod] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[misc]
    @property
    def is_active(self) -> bool:
        return any(period.end_date is None for period in self.periods)


class Indsatstrappe(BaseModel):
    id: int
    child_id: int
    created_by: int
    title: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    target_date: Optional[date] = None
    is_active: bool = True
    is_completed: bool = False
    is_public: bool = True
    accessible_user_ids: List[int] = Field(default_factory=list)
    steps: List[IndsatsStep] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Invitation(BaseModel):
    id: int
    email: str
    child_id: int
    invited_by: int
    relation: RelationType
    custom_relation_name: Optional[str] = None
    is_administrator: bool = False
    token: str
    status: InvitationStatus = InvitationStatus.PENDING
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class InvitationDetails(Invitation):
    """Invitation joined with child and inviter names for display."""

    child_name: str
    child_slug: str
    inviter_name: Optional[str] = None
    inviter_email: Optional[str] = None


class Notification(BaseModel):
    id: int
    user_id: Optional[int] = None
    pending_email: Optional[str] = None
    type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime
    updated_at: datetime


class PushSubscription(BaseModel):
    id: int
    user_id: int
    endpoint: str
    p256dh_key: str
    auth_key: str
    created_at: datetime
