"""Usage counter and review aggregate."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from pdftools.services.container import Services, get_services

router = APIRouter()


class ReviewRequest(BaseModel):
    rating: Any = None


@router.get("/stats/summary")
async def stats_summary(services: Services = Depends(get_services)):
    return services.usage.summary()


@router.get("/reviews/summary")
async def reviews_summary(services: Services = Depends(get_services)):
    return services.reviews.summary()


@router.post("/reviews")
async def submit_review(request: ReviewRequest, services: Services = Depends(get_services)):
    """Add one 1..5 star rating to the aggregate."""
    rating = request.rating
    # Accept "4" from form-ish clients, reject 4.5
    if isinstance(rating, str) and rating.strip().isdigit():
        rating = int(rating.strip())
    summary = services.reviews.add(rating)
    return {
        "ok": True,
        "review_count": summary["review_count"],
        "rating_value": summary["rating_value"],
    }
