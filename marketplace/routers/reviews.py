# marketplace/routers/reviews.py
"""
Reviews API (read side).

Reviews are written through POST /bookings/{id}/rating; these endpoints
list them by service, provider or author.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_current_user
from ..errors import NotFound
from ..models.entities import Services, Users
from ..schemas.reviews import ReviewList, ReviewRead
from ..services.ratings import get_review, list_reviews, review_to_dict

router = APIRouter(prefix="/reviews", tags=["reviews"])


def _review_list(items, total, average, page, limit) -> ReviewList:
    return ReviewList(
        reviews=[ReviewRead(**review_to_dict(b)) for b in items],
        average_rating=average,
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.get("/service/{service_id}", response_model=ReviewList)
def service_reviews(
    service_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    if not db.get(Services, service_id):
        raise NotFound("Service not found")
    items, total, average = list_reviews(db, service_id=service_id, page=page, limit=limit)
    return _review_list(items, total, average, page, limit)


@router.get("/provider/{provider_id}", response_model=ReviewList)
def provider_reviews(
    provider_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    provider = db.get(Users, provider_id)
    if not provider or provider.role != "provider":
        raise NotFound("Provider not found")
    items, total, average = list_reviews(db, provider_id=provider_id, page=page, limit=limit)
    return _review_list(items, total, average, page, limit)


@router.get("/user", response_model=ReviewList)
def my_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Users = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Reviews written by the caller."""
    items, total, average = list_reviews(db, customer_id=user.id, page=page, limit=limit)
    return _review_list(items, total, average, page, limit)


@router.get("/{review_id}", response_model=ReviewRead)
def review_detail(review_id: int, db: Session = Depends(get_db)):
    return ReviewRead(**review_to_dict(get_review(db, review_id)))
