from fastapi import APIRouter, Depends, HTTPException, Query, status

from ranaojobs.core.security import get_human_principal
from ranaojobs.schemas.applications import ApplicationCreateRequest, ApplicationOut
from ranaojobs.schemas.jobs import JobActivePatchRequest, JobCreateRequest, JobOut, RatingSummaryOut
from ranaojobs.schemas.reviews import ReviewCreateRequest, ReviewOut
from ranaojobs.services.applications import job_is_public
from ranaojobs.services.notifier import ApplicationSubmitted, ReviewCreated, SubjectSubmitted, get_notifier
from ranaojobs.services.repository import (
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.post("", response_model=JobOut, status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> JobOut:
    try:
        principal.require_scopes({"job:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.create_job(
            employer_id=principal.actor_id,
            title=payload.title,
            description=payload.description,
            category=payload.category,
            job_type=payload.job_type,
            location=payload.location,
            salary=payload.salary,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    await notifier.publish(
        SubjectSubmitted(subject_type="job", subject_id=row["id"], owner_id=row["employer_id"], label=row["title"])
    )
    return JobOut(**row)


@router.get("", response_model=list[JobOut])
async def list_jobs(
    repository=Depends(get_repository),
    category: str | None = Query(default=None, min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobOut]:
    try:
        rows = await repository.list_public_jobs(category=category, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [JobOut(**row) for row in rows]


@router.get("/mine", response_model=list[JobOut])
async def list_my_jobs(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobOut]:
    try:
        principal.require_scopes({"job:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_employer_jobs(employer_id=principal.actor_id, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [JobOut(**row) for row in rows]


@router.get("/{job_id}", response_model=JobOut)
async def get_job(job_id: str, repository=Depends(get_repository)) -> JobOut:
    try:
        row = await repository.get_job(job_id)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    # Unapproved postings are visible to their owner through /jobs/mine and to admins through moderation.
    if not job_is_public(row):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="job not found")
    return JobOut(**row)


@router.patch("/{job_id}/active", response_model=JobOut)
async def patch_job_active(
    job_id: str,
    payload: JobActivePatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> JobOut:
    try:
        principal.require_scopes({"job:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.set_job_active(job_id=job_id, actor_id=principal.actor_id, active=payload.active)
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return JobOut(**row)


@router.get("/{job_id}/reviews", response_model=list[ReviewOut])
async def list_job_reviews(
    job_id: str,
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ReviewOut]:
    try:
        rows = await repository.list_job_reviews(job_id=job_id, limit=limit, offset=offset)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ReviewOut.public(row) for row in rows]


@router.post("/{job_id}/reviews", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def create_job_review(
    job_id: str,
    payload: ReviewCreateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ReviewOut:
    try:
        principal.require_scopes({"review:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.create_review(
            job_id=job_id,
            jobseeker_id=principal.actor_id,
            rating=payload.rating,
            review=payload.review,
            worked_at_company=payload.worked_at_company,
            anonymous=payload.anonymous,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    await notifier.publish(
        ReviewCreated(
            review_id=row["id"],
            job_id=row["job_id"],
            job_title=row["job_title"],
            employer_id=row["employer_id"],
            jobseeker_id=row["jobseeker_id"],
            rating=row["rating"],
        )
    )
    return ReviewOut(**row)


@router.get("/{job_id}/rating", response_model=RatingSummaryOut)
async def get_job_rating(job_id: str, repository=Depends(get_repository)) -> RatingSummaryOut:
    try:
        row = await repository.get_job_rating(job_id)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return RatingSummaryOut(**row)


@router.post("/{job_id}/applications", response_model=ApplicationOut, status_code=status.HTTP_201_CREATED)
async def apply_to_job(
    job_id: str,
    payload: ApplicationCreateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ApplicationOut:
    try:
        principal.require_scopes({"application:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.apply_to_job(
            job_id=job_id,
            jobseeker_id=principal.actor_id,
            cover_letter=payload.cover_letter,
            phone_number=payload.phone_number,
        )
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    await notifier.publish(
        ApplicationSubmitted(
            application_id=row["id"],
            job_id=row["job_id"],
            job_title=row["job_title"],
            employer_id=row["employer_id"],
            jobseeker_id=row["jobseeker_id"],
            applicant_name=row["applicant_name"],
        )
    )
    return ApplicationOut(**row)


@router.get("/{job_id}/applications", response_model=list[ApplicationOut])
async def list_job_applications(
    job_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    application_status: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ApplicationOut]:
    try:
        principal.require_scopes({"job:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_job_applications(
            job_id=job_id,
            employer_id=principal.actor_id,
            status=application_status,
            limit=limit,
            offset=offset,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ApplicationOut(**row) for row in rows]
