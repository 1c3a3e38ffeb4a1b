from fastapi import APIRouter, Depends, HTTPException, status

from ranaojobs.core.security import get_human_principal
from ranaojobs.schemas.reviews import FlagOut, FlagRequest, HelpfulnessRequest, ReviewOut, ReviewPatchRequest
from ranaojobs.services.notifier import ReviewFlagged, get_notifier
from ranaojobs.services.repository import (
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.patch("/{review_id}", response_model=ReviewOut)
async def patch_review(
    review_id: str,
    payload: ReviewPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ReviewOut:
    try:
        principal.require_scopes({"review:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.update_review(
            review_id=review_id,
            actor_id=principal.actor_id,
            fields=payload.model_dump(exclude_unset=True),
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return ReviewOut(**row)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> None:
    if not principal.is_admin:
        try:
            principal.require_scopes({"review:write"})
        except PermissionError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        await repository.delete_review(review_id=review_id, actor_id=principal.actor_id, is_admin=principal.is_admin)
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("/{review_id}/helpfulness", response_model=ReviewOut)
async def mark_helpfulness(
    review_id: str,
    payload: HelpfulnessRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ReviewOut:
    try:
        principal.require_scopes({"profile:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.mark_review_helpfulness(
            review_id=review_id,
            user_id=principal.actor_id,
            is_helpful=payload.is_helpful,
        )
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return ReviewOut.public(row)


@router.post("/{review_id}/flags", response_model=FlagOut, status_code=status.HTTP_201_CREATED)
async def flag_review(
    review_id: str,
    payload: FlagRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> FlagOut:
    try:
        principal.require_scopes({"profile:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.flag_review(review_id=review_id, user_id=principal.actor_id, reason=payload.reason)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    await notifier.publish(ReviewFlagged(review_id=row["review_id"], job_id=row["job_id"], flagged_by=row["user_id"]))
    return FlagOut(**row)
