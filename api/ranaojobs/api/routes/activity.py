from fastapi import APIRouter, Depends, HTTPException, Query, status

from ranaojobs.core.security import get_human_principal
from ranaojobs.schemas.activity import ActivityOut
from ranaojobs.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("", response_model=list[ActivityOut])
async def list_my_activity(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    activity_type: str | None = Query(default=None, alias="type", min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ActivityOut]:
    try:
        principal.require_scopes({"profile:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_activity(
            user_id=principal.actor_id,
            type=activity_type,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ActivityOut(**row) for row in rows]
