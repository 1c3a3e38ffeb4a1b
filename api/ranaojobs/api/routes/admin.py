from fastapi import APIRouter, Depends, HTTPException, Query, status

from ranaojobs.core.security import get_human_principal
from ranaojobs.schemas.activity import ActivityOut
from ranaojobs.schemas.notifications import CountOut, NotificationAudience
from ranaojobs.schemas.reviews import ReviewOut, ReviewStatusPatchRequest
from ranaojobs.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.patch("/reviews/{review_id}", response_model=ReviewOut)
async def patch_review_status(
    review_id: str,
    payload: ReviewStatusPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ReviewOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        row = await repository.set_review_status(
            review_id=review_id,
            status=payload.status,
            actor_id=principal.actor_id,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return ReviewOut(**row)


@router.delete("/notifications", response_model=CountOut)
async def clear_notifications(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    audience: NotificationAudience | None = Query(default=None),
) -> CountOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        removed = await repository.clear_notifications(audience=audience)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return CountOut(count=removed)


@router.get("/activity", response_model=list[ActivityOut])
async def list_activity(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    user_id: str | None = Query(default=None, min_length=1),
    activity_type: str | None = Query(default=None, alias="type", min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ActivityOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_activity(user_id=user_id, type=activity_type, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ActivityOut(**row) for row in rows]


@router.delete("/activity", response_model=CountOut)
async def clear_activity(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    user_id: str | None = Query(default=None, min_length=1),
) -> CountOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        removed = await repository.clear_activity(user_id=user_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return CountOut(count=removed)
