"""
Data models and type definitions for ClientDesk.

Records mirror the documents kept in the hosted store: field aliases are the
stored (camelCase) names, attribute names are Python names. Drafts are the
caller-side input for create operations and never carry an id.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Normalize a store-native temporal value to an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), dates, RFC 3339 /
    ISO 8601 strings, epoch seconds and ``{"seconds", "nanoseconds"}`` maps as
    produced by JSON exports of store timestamps. ``None`` and ``""`` stay
    absent.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if seconds is None:
            raise ValueError("timestamp map without seconds")
        return datetime.fromtimestamp(int(seconds) + int(nanos) / 1e9, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # Store timestamps carry nanoseconds; fromisoformat handles up to micros
        if "." in text:
            head, _, tail = text.partition(".")
            digits = ""
            rest = ""
            for i, ch in enumerate(tail):
                if not ch.isdigit():
                    rest = tail[i:]
                    break
                digits += ch
            text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
        return to_datetime(datetime.fromisoformat(text))
    raise ValueError(f"unsupported timestamp value: {type(value).__name__}")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _split_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    return [str(tag).strip() for tag in value if str(tag).strip()]


def _parse_amount(value: Any) -> float:
    """Free-text amounts that do not parse become 0."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_percent(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _strip_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("title must not be blank")
    return value


# Enumerations


class TaskInterval(str, Enum):
    """Repeat interval of a recurring task template."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def stored_value(self) -> str:
        """Value written to the store (existing documents use German labels)."""
        return _INTERVAL_STORED[self]

    @classmethod
    def parse(cls, raw: Any) -> "TaskInterval":
        if isinstance(raw, cls):
            return raw
        text = str(raw or "").strip().lower()
        for member in cls:
            if text in (member.value, member.stored_value):
                return member
        raise ValueError(f"unknown interval: {raw!r}")


_INTERVAL_STORED = {
    TaskInterval.DAILY: "täglich",
    TaskInterval.WEEKLY: "wöchentlich",
    TaskInterval.MONTHLY: "monatlich",
}


class ContactStatus(str, Enum):
    """Relationship status of a contact."""

    CUSTOMER = "Kunde"
    PROSPECT = "Interessent"
    LEAD = "Lead"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LeadSource(str, Enum):
    WEBSITE = "Website"
    REFERRAL = "Referral"
    ADVERTISEMENT = "Advertisement"
    COLD_CALL = "Cold Call"
    OTHER = "Other"


class DealStatus(str, Enum):
    ACTIVE = "active"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"


class ActivityType(str, Enum):
    CALL = "Call"
    EMAIL = "Email"
    MEETING = "Meeting"
    NOTE = "Note"
    TASK = "Task"
    ASSESSMENT = "Assessment"


class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class AssessmentTool(str, Enum):
    DIGITAL_ASSESSMENT = "Digital Assessment"
    KI_READINESS = "KI-Readiness Check"
    CRM_BUILDER = "CRM Strategie Builder"


# Base Models


class StoredRecord(BaseModel):
    """Base class for every record read back from the store."""

    id: str = Field(..., min_length=1)

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Draft(BaseModel):
    """Base class for caller input to create operations."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# Recurring task templates


class RecurringTaskTemplate(StoredRecord):
    """Template for a task that is repeated daily, weekly or monthly."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    interval: TaskInterval
    owner_id: str = Field(..., alias="userId", min_length=1)

    @field_validator("interval", mode="before")
    @classmethod
    def parse_interval(cls, v):
        return TaskInterval.parse(v)

    @field_serializer("interval")
    def serialize_interval(self, v: TaskInterval) -> str:
        return v.stored_value


class TemplateDraft(Draft):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    interval: TaskInterval

    @field_validator("interval", mode="before")
    @classmethod
    def parse_interval(cls, v):
        return TaskInterval.parse(v)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        return _strip_title(v)


# Data retention


class DataRetentionSettings(BaseModel):
    """Per-user retention period; one document per user."""

    retention_days: int = Field(..., alias="retentionDays", gt=0)
    last_updated: datetime = Field(..., alias="lastUpdated")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator("last_updated", mode="before")
    @classmethod
    def parse_last_updated(cls, v):
        return to_datetime(v)

    @field_validator("retention_days", mode="before")
    @classmethod
    def reject_bool(cls, v):
        if isinstance(v, bool):
            raise ValueError("retentionDays must be an integer")
        return v


# Contacts


class Contact(StoredRecord):
    """CRM contact."""

    name: str
    company: str = ""
    email: str = ""
    phone: str = ""
    deal_value: float = Field(default=0.0, alias="dealValue")
    status: ContactStatus = ContactStatus.LEAD
    last_contact: Optional[datetime] = Field(default=None, alias="lastContact")
    deal_stage: Optional[str] = Field(default=None, alias="dealStage")
    priority: Optional[Priority] = None
    tags: List[str] = Field(default_factory=list)
    notes: str = ""
    lead_source: Optional[LeadSource] = Field(default=None, alias="leadSource")
    owner_id: Optional[str] = Field(default=None, alias="userId")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("last_contact", "created_at", "updated_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v):
        return to_datetime(v)


class ContactDraft(Draft):
    """Contact form input; text fields are normalized the way the form sends them."""

    name: str = Field(..., min_length=1, max_length=200)
    company: str = ""
    email: str = ""
    phone: str = ""
    deal_value: float = Field(default=0.0, alias="dealValue")
    status: ContactStatus = ContactStatus.LEAD
    last_contact: Optional[date] = Field(default=None, alias="lastContact")
    deal_stage: str = Field(default="Initial Contact", alias="dealStage")
    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    notes: str = ""
    lead_source: LeadSource = Field(default=LeadSource.OTHER, alias="leadSource")

    @field_validator("deal_value", mode="before")
    @classmethod
    def parse_deal_value(cls, v):
        return _parse_amount(v)

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, v):
        return _split_tags(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip()

    def to_store_data(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="python")
        data["status"] = self.status.value
        data["priority"] = self.priority.value
        data["leadSource"] = self.lead_source.value
        data["lastContact"] = (self.last_contact or date.today()).isoformat()
        return data


# Deals


class PipelineStage(BaseModel):
    """One column of the sales pipeline."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    probability: Optional[int] = Field(default=None, ge=0, le=100)
    color: Optional[str] = None
    order: int = 0

    model_config = ConfigDict(extra="ignore")

    def to_store_data(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_none=True)


DEFAULT_PIPELINE_STAGES = (
    PipelineStage(id="lead", name="Lead", probability=10, color="#3B82F6", order=0),
    PipelineStage(id="contacted", name="Kontaktiert", probability=25, color="#F59E0B", order=1),
    PipelineStage(id="demo-planned", name="Demo geplant", probability=50, color="#10B981", order=2),
    PipelineStage(id="proposal-sent", name="Angebot erstellt", probability=75, color="#8B5CF6", order=3),
    PipelineStage(id="won", name="Gewonnen", probability=100, color="#14B8A6", order=4),
    PipelineStage(id="lost", name="Verloren", probability=0, color="#EF4444", order=5),
)


class Deal(StoredRecord):
    """Sales opportunity in the pipeline."""

    title: str
    company: str = ""
    value: float = 0.0
    probability: int = 0
    stage_id: Optional[str] = Field(default=None, alias="stageId")
    stage: str = ""
    status: DealStatus = DealStatus.ACTIVE
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    assigned_user_id: Optional[str] = Field(default=None, alias="assignedUserId")
    owner_id: Optional[str] = Field(default=None, alias="userId")
    notes: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    expected_close_date: Optional[datetime] = Field(default=None, alias="expectedCloseDate")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    closed_at: Optional[datetime] = Field(default=None, alias="closedAt")

    @field_validator(
        "expected_close_date", "created_at", "updated_at", "closed_at", mode="before"
    )
    @classmethod
    def parse_timestamps(cls, v):
        return to_datetime(v)


class DealDraft(Draft):
    title: str = Field(..., min_length=1, max_length=500)
    company_name: str = Field(default="", alias="companyName")
    value: float = 0.0
    probability: int = Field(default=0, ge=0, le=100)
    stage_id: Optional[str] = Field(default=None, alias="stageId")
    expected_close_date: Optional[date] = Field(default=None, alias="expectedCloseDate")
    description: Optional[str] = None
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def parse_value(cls, v):
        return _parse_amount(v)

    @field_validator("probability", mode="before")
    @classmethod
    def parse_probability(cls, v):
        return _parse_percent(v)

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, v):
        return _split_tags(v)


class DealUpdate(Draft):
    """
    Partial edit of a deal's details.

    Only fields that were passed are written. Passing ``None`` (or an empty
    value) for an optional field clears it.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    company_name: Optional[str] = Field(default=None, alias="companyName")
    value: Optional[float] = None
    probability: Optional[int] = Field(default=None, ge=0, le=100)
    stage_id: Optional[str] = Field(default=None, alias="stageId")
    expected_close_date: Optional[date] = Field(default=None, alias="expectedCloseDate")
    description: Optional[str] = None
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    tags: Optional[List[str]] = None
    notes: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def parse_value(cls, v):
        return _parse_amount(v)

    @field_validator("probability", mode="before")
    @classmethod
    def parse_probability(cls, v):
        return _parse_percent(v)

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, v):
        return _split_tags(v)

    def to_store_data(self) -> Dict[str, Any]:
        given = self.model_fields_set
        data: Dict[str, Any] = {}
        for name, key in (
            ("title", "title"),
            ("company_name", "company"),
            ("value", "value"),
            ("probability", "probability"),
            ("stage_id", "stageId"),
        ):
            if name in given and getattr(self, name) is not None:
                data[key] = getattr(self, name)
        for name, key in (
            ("contact_id", "contactId"),
            ("assigned_to", "assignedUserId"),
            ("notes", "notes"),
            ("description", "description"),
            ("tags", "tags"),
        ):
            if name in given:
                data[key] = getattr(self, name) or None
        if "expected_close_date" in given:
            data["expectedCloseDate"] = to_datetime(self.expected_close_date)
        return data


# Activities


class Activity(StoredRecord):
    """Logged interaction (call, e-mail, meeting, note, task, assessment)."""

    type: ActivityType
    title: str
    description: Optional[str] = None
    notes: Optional[str] = None
    activity_date: datetime = Field(..., alias="activityDate")
    owner_id: Optional[str] = Field(default=None, alias="userId")
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    deal_id: Optional[str] = Field(default=None, alias="dealId")
    is_completed: Optional[bool] = Field(default=None, alias="isCompleted")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator(
        "activity_date", "completed_at", "created_at", "updated_at", mode="before"
    )
    @classmethod
    def parse_timestamps(cls, v):
        return to_datetime(v)


class ActivityDraft(Draft):
    type: ActivityType
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    notes: Optional[str] = None
    activity_date: date = Field(..., alias="activityDate")
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    deal_id: Optional[str] = Field(default=None, alias="dealId")
    is_completed: bool = Field(default=False, alias="isCompleted")


class ActivityUpdate(Draft):
    """Partial edit of an activity; only passed fields are written."""

    type: Optional[ActivityType] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    notes: Optional[str] = None
    activity_date: Optional[date] = Field(default=None, alias="activityDate")
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    deal_id: Optional[str] = Field(default=None, alias="dealId")
    is_completed: Optional[bool] = Field(default=None, alias="isCompleted")

    def to_store_data(self) -> Dict[str, Any]:
        """Stored fields for everything except completion, which depends on the clock."""
        given = self.model_fields_set
        data: Dict[str, Any] = {}
        if "type" in given and self.type is not None:
            data["type"] = self.type.value
        if "title" in given and self.title is not None:
            data["title"] = self.title
        if "activity_date" in given and self.activity_date is not None:
            data["activityDate"] = to_datetime(self.activity_date)
        for name, key in (
            ("description", "description"),
            ("notes", "notes"),
            ("contact_id", "contactId"),
            ("deal_id", "dealId"),
        ):
            if name in given:
                data[key] = getattr(self, name) or None
        return data


class ActivityFilters(BaseModel):
    """Narrows an activity list; every given criterion must hold."""

    contact_id: Optional[str] = None
    deal_id: Optional[str] = None
    activity_type: Optional[ActivityType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


# Tasks


class Task(StoredRecord):
    """To-do item of a user, optionally linked to a deal or contact."""

    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.OPEN
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    priority: Optional[Priority] = None
    related_deal_id: Optional[str] = Field(default=None, alias="relatedDealId")
    related_contact_id: Optional[str] = Field(default=None, alias="relatedContactId")
    template: bool = False
    owner_id: Optional[str] = Field(default=None, alias="userId")
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("due_date", "created_at", "updated_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v):
        return to_datetime(v)


class TaskDraft(Draft):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    status: TaskStatus = TaskStatus.OPEN
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    priority: Priority = Priority.MEDIUM
    related_deal_id: Optional[str] = Field(default=None, alias="relatedDealId")
    related_contact_id: Optional[str] = Field(default=None, alias="relatedContactId")
    template: bool = False
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        return _strip_title(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v):
        return to_datetime(v)

    def to_store_data(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "dueDate": self.due_date,
            "priority": self.priority.value,
            "relatedDealId": self.related_deal_id or None,
            "relatedContactId": self.related_contact_id or None,
            "template": self.template,
            "assignedTo": self.assigned_to or None,
        }


class TaskUpdate(Draft):
    """Partial edit of a task."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    priority: Optional[Priority] = None
    related_deal_id: Optional[str] = Field(default=None, alias="relatedDealId")
    related_contact_id: Optional[str] = Field(default=None, alias="relatedContactId")
    template: Optional[bool] = None
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v):
        return to_datetime(v)

    def to_store_data(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="python", exclude_unset=True)
        for key in ("status", "priority"):
            if isinstance(data.get(key), Enum):
                data[key] = data[key].value
        return data


# Assessments


class AssessmentRecommendation(BaseModel):
    id: str
    text: str


class AssessmentResult(StoredRecord):
    """Outcome of one assessment tool run, linked to a contact."""

    owner_id: str = Field(..., alias="userId")
    tool: AssessmentTool = Field(..., alias="type")
    score: float
    recommendations: List[AssessmentRecommendation] = Field(default_factory=list)
    completed_at: datetime = Field(..., alias="completedAt")
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    assessed_email: Optional[str] = Field(default=None, alias="assessedEmail")

    @field_validator("completed_at", mode="before")
    @classmethod
    def parse_completed_at(cls, v):
        return to_datetime(v)


class AssessmentDraft(Draft):
    contact_email: str = Field(..., min_length=3, alias="contactEmail")
    tool_name: AssessmentTool = Field(..., alias="toolName")
    score: float = Field(..., ge=0)
    recommendations: str = ""
    assessment_date: Optional[datetime] = Field(default=None, alias="assessmentDate")

    @field_validator("contact_email")
    @classmethod
    def normalize_email(cls, v):
        v = v.strip()
        if "@" not in v:
            raise ValueError("contactEmail must be an e-mail address")
        return v

    def recommendation_items(self) -> List[AssessmentRecommendation]:
        """One recommendation per non-blank line."""
        lines = [line.strip() for line in self.recommendations.splitlines()]
        return [
            AssessmentRecommendation(id=str(index), text=text)
            for index, text in enumerate(line for line in lines if line)
        ]
