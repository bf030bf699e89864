"""Team KPI endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from tasksync.api.deps import get_services

router = APIRouter(prefix="/api/kpi", tags=["kpi"])


@router.get("/")
async def get_kpis(team: Optional[str] = None, services=Depends(get_services)):
    """KPIs for every configured team, or just `team`"""
    kpis = await services.kpi.get_team_kpis()
    if team is not None:
        kpi = kpis.get(team.lower())
        if kpi is None:
            raise HTTPException(status_code=404, detail=f"Unknown team '{team}'")
        return kpi.model_dump()
    return {name: kpi.model_dump() for name, kpi in kpis.items()}


@router.post("/refresh")
async def refresh_kpis(services=Depends(get_services)):
    services.kpi.invalidate()
    kpis = await services.kpi.get_team_kpis()
    return {name: kpi.model_dump() for name, kpi in kpis.items()}
