from fastapi import APIRouter, Depends, HTTPException, Query, status

from ranaojobs.core.security import get_human_principal, recipient_ids_for
from ranaojobs.schemas.notifications import CountOut, NotificationAudience, NotificationOut
from ranaojobs.services.repository import RepositoryNotFoundError, RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    unread_only: bool = Query(default=False),
    audience: NotificationAudience | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[NotificationOut]:
    try:
        principal.require_scopes({"notification:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_notifications(
            recipient_ids=recipient_ids_for(principal),
            audience=audience,
            unread_only=unread_only,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [NotificationOut(**row) for row in rows]


@router.post("/read-all", response_model=CountOut)
async def mark_all_read(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> CountOut:
    try:
        principal.require_scopes({"notification:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        updated = await repository.mark_all_notifications_read(recipient_ids=recipient_ids_for(principal))
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return CountOut(count=updated)


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> NotificationOut:
    try:
        principal.require_scopes({"notification:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.mark_notification_read(
            notification_id=notification_id,
            recipient_ids=recipient_ids_for(principal),
        )
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return NotificationOut(**row)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> None:
    try:
        principal.require_scopes({"notification:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        await repository.delete_notification(
            notification_id=notification_id,
            recipient_ids=recipient_ids_for(principal),
        )
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
