from fastapi import APIRouter, Depends, HTTPException, status

from ranaojobs.schemas.jobs import RatingSummaryOut
from ranaojobs.services.repository import RepositoryNotFoundError, RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("/{employer_id}/rating", response_model=RatingSummaryOut)
async def get_employer_rating(employer_id: str, repository=Depends(get_repository)) -> RatingSummaryOut:
    try:
        row = await repository.get_employer_rating(employer_id)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return RatingSummaryOut(**row)
