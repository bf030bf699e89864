"""Per-team task KPIs, teams being identified by ClickUp tags"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from tasksync.models.sync_log import utcnow
from tasksync.schemas import InternalTask, InternalUser, parse_timestamp

logger = logging.getLogger(__name__)

KPI_CACHE_KEY = "kpi"

_TODO = {"to do", "todo", "pending"}
_IN_PROGRESS = {"in progress", "review"}
_COMPLETED = {"completed", "complete", "done", "closed"}


class MemberKPI(BaseModel):
    user_id: int
    user_name: str
    total_tasks: int = 0
    todo_tasks: int = 0
    in_progress_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0
    total_progress: int = 0
    average_progress: int = 0
    completion_rate: int = 0


class TeamKPI(BaseModel):
    team_name: str
    total_tasks: int = 0
    todo_tasks: int = 0
    in_progress_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0
    completion_rate: int = 0
    members: List[MemberKPI] = Field(default_factory=list)


def _rate(part: int, total: int) -> int:
    return int(round(part / total * 100)) if total else 0


def _bucket(status: Optional[str]) -> Optional[str]:
    key = (status or "").strip().lower()
    if key in _TODO:
        return "todo_tasks"
    if key in _IN_PROGRESS:
        return "in_progress_tasks"
    if key in _COMPLETED:
        return "completed_tasks"
    return None


def filter_tasks_by_tag(
    tasks: Iterable[InternalTask], task_tags: Dict[str, List[str]], tag: str
) -> List[InternalTask]:
    """Tasks whose ClickUp twin carries `tag` (case-insensitive)."""
    tag = tag.lower()
    return [
        t
        for t in tasks
        if t.external_id and any(x.lower() == tag for x in task_tags.get(t.external_id, []))
    ]


def compute_team_kpi(
    team: str,
    tasks: List[InternalTask],
    users: Iterable[InternalUser],
    *,
    now: Optional[datetime] = None,
) -> TeamKPI:
    now = now or utcnow()
    names = {u.internal_id: u.name or u.username or f"User #{u.internal_id}" for u in users}
    kpi = TeamKPI(team_name=team, total_tasks=len(tasks))
    members: Dict[int, MemberKPI] = {}

    for task in tasks:
        bucket = _bucket(task.status)
        if bucket:
            setattr(kpi, bucket, getattr(kpi, bucket) + 1)

        deadline = parse_timestamp(task.deadline)
        overdue = bucket != "completed_tasks" and deadline is not None and deadline < now
        if overdue:
            kpi.overdue_tasks += 1

        if not task.assignee_id or task.assignee_id <= 0:
            continue
        member = members.get(task.assignee_id)
        if member is None:
            member = MemberKPI(
                user_id=task.assignee_id,
                user_name=names.get(task.assignee_id, f"User #{task.assignee_id}"),
            )
            members[task.assignee_id] = member
        member.total_tasks += 1
        if bucket:
            setattr(member, bucket, getattr(member, bucket) + 1)
        if overdue:
            member.overdue_tasks += 1
        member.total_progress += task.progress_percentage or 0

    kpi.completion_rate = _rate(kpi.completed_tasks, kpi.total_tasks)
    for member in members.values():
        member.average_progress = member.total_progress // member.total_tasks
        member.completion_rate = _rate(member.completed_tasks, member.total_tasks)
    kpi.members = sorted(
        members.values(), key=lambda m: (m.completion_rate, m.total_tasks), reverse=True
    )
    return kpi


class KPIService:
    """Cached team KPIs built from internal tasks and their ClickUp tags"""

    def __init__(self, lookup, users, outbound, cache, *, teams: List[str], ttl_seconds: float = 600):
        self.lookup = lookup
        self.users = users
        self.outbound = outbound
        self.cache = cache
        self.teams = teams
        self.ttl_seconds = ttl_seconds

    async def _build(self) -> Dict[str, TeamKPI]:
        tasks, users = await asyncio.gather(self.lookup.all_tasks(), self.users.list_internal_users())
        task_tags = await self.outbound.fetch_task_tags(tasks)
        result = {
            team: compute_team_kpi(team, filter_tasks_by_tag(tasks, task_tags, team), users)
            for team in self.teams
        }
        logger.info(
            "KPIs computed: " + ", ".join(f"{team}={kpi.total_tasks} tasks" for team, kpi in result.items())
        )
        return result

    async def get_team_kpis(self) -> Dict[str, TeamKPI]:
        """KPIs per configured team; empty KPIs if the data cannot be loaded."""
        try:
            return await self.cache.get_or_build(KPI_CACHE_KEY, self.ttl_seconds, self._build)
        except Exception as e:
            logger.error(f"Failed to compute KPIs: {e}")
            return {team: TeamKPI(team_name=team) for team in self.teams}

    def invalidate(self) -> None:
        self.cache.invalidate(KPI_CACHE_KEY)
