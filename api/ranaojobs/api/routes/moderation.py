from fastapi import APIRouter, Depends, HTTPException, Query, status

from ranaojobs.core.security import get_human_principal
from ranaojobs.schemas.moderation import ModerationStatus, ModerationSubjectOut, RejectRequest, SubjectType
from ranaojobs.services.notifier import SubjectDecided, get_notifier
from ranaojobs.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


def _decided_event(row: dict) -> SubjectDecided:
    return SubjectDecided(
        subject_type=row["subject_type"],
        subject_id=row["subject_id"],
        owner_id=row["owner_id"],
        label=row["label"],
        status=row["status"],
        decided_by=row["decided_by"],
        rejection_reason=row["rejection_reason"],
    )


@router.get("/{subject_type}", response_model=list[ModerationSubjectOut])
async def list_subjects(
    subject_type: SubjectType,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    subject_status: ModerationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ModerationSubjectOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_subjects(
            subject_type=subject_type,
            status=subject_status,
            limit=limit,
            offset=offset,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ModerationSubjectOut(**row) for row in rows]


@router.get("/{subject_type}/{subject_id}", response_model=ModerationSubjectOut)
async def get_subject(
    subject_type: SubjectType,
    subject_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ModerationSubjectOut:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.get_subject(subject_type=subject_type, subject_id=subject_id)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return ModerationSubjectOut(**row)


@router.post("/{subject_type}/{subject_id}/approve", response_model=ModerationSubjectOut)
async def approve_subject(
    subject_type: SubjectType,
    subject_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ModerationSubjectOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        row = await repository.approve_subject(
            subject_type=subject_type,
            subject_id=subject_id,
            actor_id=principal.actor_id,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    await notifier.publish(_decided_event(row))
    return ModerationSubjectOut(**row)


@router.post("/{subject_type}/{subject_id}/reject", response_model=ModerationSubjectOut)
async def reject_subject(
    subject_type: SubjectType,
    subject_id: str,
    payload: RejectRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ModerationSubjectOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        row = await repository.reject_subject(
            subject_type=subject_type,
            subject_id=subject_id,
            actor_id=principal.actor_id,
            reason=payload.reason,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    await notifier.publish(_decided_event(row))
    return ModerationSubjectOut(**row)
