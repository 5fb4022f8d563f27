"""
Dashboard aggregates.

Pure functions over typed snapshots plus ``DashboardView``, which keeps live
snapshots of deals, contacts and activities and recomputes on demand.
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import structlog
from pydantic import BaseModel

from clientdesk.core.models import (
    DEFAULT_PIPELINE_STAGES,
    Activity,
    ActivityType,
    Contact,
    Deal,
    DealStatus,
    PipelineStage,
    utc_now,
)

logger = structlog.get_logger(__name__)

OPEN_STATUSES = (DealStatus.ACTIVE, DealStatus.NEGOTIATION)
UNKNOWN_STAGE = "Unknown"
NEW_CONTACT_WINDOW = timedelta(days=7)

_ACTIVITY_COLUMNS = {
    ActivityType.CALL: "calls",
    ActivityType.EMAIL: "emails",
    ActivityType.MEETING: "meetings",
    ActivityType.TASK: "tasks",
}


class DashboardKPIs(BaseModel):
    active_deals: int = 0
    active_deals_value: float = 0.0
    new_contacts: int = 0
    pipeline_value: float = 0.0
    open_tasks: int = 0


class RevenuePoint(BaseModel):
    month: str
    revenue: float


class PipelinePoint(BaseModel):
    stage: str
    value: float
    count: int


class ContactsPoint(BaseModel):
    month: str
    new: int
    total: int


class ActivityPoint(BaseModel):
    day: str
    calls: int = 0
    emails: int = 0
    meetings: int = 0
    tasks: int = 0


def compute_kpis(
    deals: Sequence[Deal],
    contacts: Sequence[Contact],
    activities: Sequence[Activity] = (),
    now: Optional[datetime] = None,
) -> DashboardKPIs:
    """Headline numbers of the dashboard."""
    now = now or utc_now()
    active = [d for d in deals if d.status == DealStatus.ACTIVE]
    since = now - NEW_CONTACT_WINDOW
    return DashboardKPIs(
        active_deals=len(active),
        active_deals_value=sum(d.value for d in active),
        new_contacts=sum(1 for c in contacts if c.created_at and c.created_at >= since),
        pipeline_value=sum(d.value for d in deals if d.status in OPEN_STATUSES),
        open_tasks=sum(
            1 for a in activities if a.type == ActivityType.TASK and not a.is_completed
        ),
    )


def revenue_by_month(deals: Sequence[Deal]) -> List[RevenuePoint]:
    """Won revenue per closing month, oldest first."""
    totals: Dict[str, float] = {}
    for deal in deals:
        if deal.status != DealStatus.WON or deal.closed_at is None:
            continue
        month = deal.closed_at.strftime("%Y-%m")
        totals[month] = totals.get(month, 0.0) + deal.value
    return [RevenuePoint(month=m, revenue=v) for m, v in sorted(totals.items())]


def pipeline_by_stage(
    deals: Sequence[Deal], stages: Optional[Sequence[PipelineStage]] = None
) -> List[PipelinePoint]:
    """
    Open deal value and count per stage, in pipeline order.

    Stages not in the catalog follow in name order, then deals without a stage.
    """
    catalog = sorted(stages or DEFAULT_PIPELINE_STAGES, key=lambda s: s.order)
    rank = {stage.name: index for index, stage in enumerate(catalog)}

    def stage_rank(name: str):
        if name == UNKNOWN_STAGE:
            return (2, 0, name)
        if name in rank:
            return (0, rank[name], name)
        return (1, 0, name)

    buckets: Dict[str, PipelinePoint] = {}
    for deal in deals:
        if deal.status not in OPEN_STATUSES:
            continue
        stage = deal.stage or UNKNOWN_STAGE
        point = buckets.setdefault(stage, PipelinePoint(stage=stage, value=0.0, count=0))
        point.value += deal.value
        point.count += 1
    return [buckets[s] for s in sorted(buckets, key=stage_rank)]


def top_deals(deals: Sequence[Deal], limit: int = 3) -> List[Deal]:
    """Highest-value active deals."""
    active = [d for d in deals if d.status == DealStatus.ACTIVE]
    return sorted(active, key=lambda d: d.value, reverse=True)[:limit]


def recent_activities(activities: Sequence[Activity], limit: int = 3) -> List[Activity]:
    """Latest activities by activity date; later-created first on the same date."""
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    ordered = sorted(
        activities,
        key=lambda a: (a.activity_date, a.created_at or oldest),
        reverse=True,
    )
    return ordered[:limit]


def contacts_growth(contacts: Sequence[Contact]) -> List[ContactsPoint]:
    """New contacts per month with the running total."""
    per_month: Dict[str, int] = {}
    for contact in contacts:
        if contact.created_at is None:
            continue
        month = contact.created_at.strftime("%Y-%m")
        per_month[month] = per_month.get(month, 0) + 1

    points = []
    total = 0
    for month in sorted(per_month):
        total += per_month[month]
        points.append(ContactsPoint(month=month, new=per_month[month], total=total))
    return points


def activities_by_day(
    activities: Sequence[Activity], days: int = 30, now: Optional[datetime] = None
) -> List[ActivityPoint]:
    """Calls, e-mails, meetings and tasks per day over the last ``days`` days."""
    now = now or utc_now()
    since = (now - timedelta(days=days)).date()
    per_day: "OrderedDict[str, ActivityPoint]" = OrderedDict()
    for activity in sorted(activities, key=lambda a: a.activity_date):
        column = _ACTIVITY_COLUMNS.get(activity.type)
        day = activity.activity_date.date()
        if column is None or day < since or day > now.date():
            continue
        point = per_day.setdefault(day.isoformat(), ActivityPoint(day=day.isoformat()))
        setattr(point, column, getattr(point, column) + 1)
    return list(per_day.values())


class DashboardView:
    """
    Live dashboard for one user.

    Holds one snapshot cache per entity; every aggregate is computed from the
    latest snapshots when asked for.
    """

    def __init__(self, deals, contacts, activities, owner_id: str):
        self.owner_id = owner_id
        self.deals = deals.cache(owner_id)
        self.contacts = contacts.cache(owner_id)
        self.activities = activities.cache(owner_id)

    @property
    def caches(self):
        return (self.deals, self.contacts, self.activities)

    async def start(self) -> "DashboardView":
        for cache in self.caches:
            await cache.start()
        return self

    async def wait_ready(self, timeout: Optional[float] = None) -> "DashboardView":
        for cache in self.caches:
            await cache.wait_ready(timeout)
        return self

    def close(self) -> None:
        for cache in self.caches:
            cache.close()

    async def __aenter__(self) -> "DashboardView":
        try:
            return await self.start()
        except Exception:
            self.close()
            raise

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def kpis(self, now: Optional[datetime] = None) -> DashboardKPIs:
        return compute_kpis(self.deals.records, self.contacts.records, self.activities.records, now)

    def revenue(self) -> List[RevenuePoint]:
        return revenue_by_month(self.deals.records)

    def pipeline(self, stages: Optional[Sequence[PipelineStage]] = None) -> List[PipelinePoint]:
        return pipeline_by_stage(self.deals.records, stages)

    def top_deals(self, limit: int = 3) -> List[Deal]:
        return top_deals(self.deals.records, limit)

    def recent_activities(self, limit: int = 3) -> List[Activity]:
        return recent_activities(self.activities.records, limit)

    def contacts_growth(self) -> List[ContactsPoint]:
        return contacts_growth(self.contacts.records)

    def activity(self, days: int = 30, now: Optional[datetime] = None) -> List[ActivityPoint]:
        return activities_by_day(self.activities.records, days, now)
