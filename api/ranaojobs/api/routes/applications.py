from fastapi import APIRouter, Depends, HTTPException, status

from ranaojobs.core.security import get_human_principal
from ranaojobs.schemas.applications import ApplicationOut, ApplicationStatusPatchRequest
from ranaojobs.services.notifier import ApplicationStatusChanged, get_notifier
from ranaojobs.services.repository import (
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.patch("/{application_id}/status", response_model=ApplicationOut)
async def patch_application_status(
    application_id: str,
    payload: ApplicationStatusPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ApplicationOut:
    try:
        principal.require_scopes({"job:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.set_application_status(
            application_id=application_id,
            actor_id=principal.actor_id,
            status=payload.status,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if row["previous_status"] != row["status"]:
        await notifier.publish(
            ApplicationStatusChanged(
                application_id=row["id"],
                job_id=row["job_id"],
                job_title=row["job_title"],
                jobseeker_id=row["jobseeker_id"],
                status=row["status"],
            )
        )
    return ApplicationOut(**row)
