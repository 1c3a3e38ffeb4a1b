from fastapi import APIRouter, Depends, HTTPException, Query, status

from ranaojobs.core.security import get_human_principal
from ranaojobs.schemas.applications import ApplicationOut
from ranaojobs.schemas.moderation import ModerationSubjectOut
from ranaojobs.schemas.reviews import ReviewOut
from ranaojobs.schemas.users import (
    ActiveRolePatchRequest,
    EmployerVerificationRequest,
    MultiRoleRequest,
    UserOut,
    UserPatchRequest,
    UserRegisterRequest,
)
from ranaojobs.services.notifier import SubjectSubmitted, UserRegistered, get_notifier
from ranaojobs.services.repository import (
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()


@router.post("/me", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register_me(
    payload: UserRegisterRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> UserOut:
    try:
        principal.require_scopes({"profile:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if principal.is_registered:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="user is already registered")

    try:
        row = await repository.register_user(
            user_id=principal.actor_id,
            role=payload.role,
            email=payload.email or principal.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            company_name=payload.company_name,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    display_name = f"{row['first_name']} {row['last_name']}".strip()
    if row["role"] == "employer":
        display_name = row["company_name"] or display_name
    await notifier.publish(UserRegistered(user_id=row["id"], role=row["role"], name=display_name or row["id"]))
    return UserOut(**row)


@router.get("/me", response_model=UserOut)
async def get_me(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> UserOut:
    try:
        principal.require_scopes({"profile:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.get_user(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return UserOut(**row)


@router.patch("/me", response_model=UserOut)
async def patch_me(
    payload: UserPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> UserOut:
    try:
        principal.require_scopes({"profile:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.update_user_profile(
            user_id=principal.actor_id,
            fields=payload.model_dump(exclude_unset=True),
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return UserOut(**row)


@router.patch("/me/active-role", response_model=UserOut)
async def patch_active_role(
    payload: ActiveRolePatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> UserOut:
    try:
        principal.require_scopes({"profile:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.switch_active_role(user_id=principal.actor_id, active_role=payload.active_role)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return UserOut(**row)


@router.post(
    "/me/employer-verification",
    response_model=ModerationSubjectOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_employer_verification(
    payload: EmployerVerificationRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ModerationSubjectOut:
    try:
        principal.require_scopes({"verification:submit"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.submit_employer_verification(
            user_id=principal.actor_id,
            details=payload.model_dump(),
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
        SubjectSubmitted(
            subject_type=row["subject_type"],
            subject_id=row["subject_id"],
            owner_id=row["owner_id"],
            label=row["label"],
        )
    )
    return ModerationSubjectOut(**row)


@router.post(
    "/me/multi-role-request",
    response_model=ModerationSubjectOut,
    status_code=status.HTTP_201_CREATED,
)
async def request_multi_role(
    payload: MultiRoleRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    notifier=Depends(get_notifier),
) -> ModerationSubjectOut:
    try:
        principal.require_scopes({"verification:submit"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.request_multi_role_upgrade(
            user_id=principal.actor_id,
            jobseeker_profile=payload.jobseeker_profile,
        )
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    await notifier.publish(
        SubjectSubmitted(
            subject_type=row["subject_type"],
            subject_id=row["subject_id"],
            owner_id=row["owner_id"],
            label=row["label"],
        )
    )
    return ModerationSubjectOut(**row)


@router.get("/me/reviews", response_model=list[ReviewOut])
async def list_my_reviews(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ReviewOut]:
    try:
        principal.require_scopes({"review:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_user_reviews(jobseeker_id=principal.actor_id, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ReviewOut(**row) for row in rows]


@router.get("/me/applications", response_model=list[ApplicationOut])
async def list_my_applications(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ApplicationOut]:
    try:
        principal.require_scopes({"application:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_user_applications(jobseeker_id=principal.actor_id, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [ApplicationOut(**row) for row in rows]
