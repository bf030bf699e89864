"""User directory endpoints"""

from fastapi import APIRouter, Depends, HTTPException

from tasksync.api.deps import get_services

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/")
async def list_users(services=Depends(get_services)):
    """Backend users (or the ClickUp roster when the backend has none)"""
    try:
        return await services.users.list_users()
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/{user_id}")
async def get_user(user_id: int, services=Depends(get_services)):
    try:
        user = await services.users.get_user(user_id)
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/import")
async def import_users(services=Depends(get_services)):
    """Create backend users for ClickUp members without a match"""
    return await services.users.import_external_users()


@router.post("/clear-cache")
def clear_users_cache(services=Depends(get_services)):
    services.users.clear_cache()
    return {"message": "User cache cleared"}
