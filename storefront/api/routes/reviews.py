"""
Storefront - Review Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from storefront.api.deps import get_store
from storefront.core.database import DocumentStore
from storefront.core.security import REVIEWS_DELETE, Principal, require_capability
from storefront.services import reviews


router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


class SubmitReviewRequest(BaseModel):
    orderId: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=reviews.MAX_COMMENT_LENGTH)
    userId: Optional[str] = None


@router.get("")
async def list_reviews(
    productSlug: Optional[str] = None,
    limit: int = Query(10, ge=1, le=100),
    store: DocumentStore = Depends(get_store)
):
    items = await reviews.list_reviews(store, productSlug, limit)
    return {"ok": True, "reviews": items, "total": len(items)}


@router.post("/submit")
async def submit_review(data: SubmitReviewRequest, store: DocumentStore = Depends(get_store)):
    return await reviews.submit_review(store, data.orderId, data.rating, data.comment, data.userId)


@router.delete("/{review_id}")
async def delete_review(
    review_id: str,
    principal: Principal = Depends(require_capability(REVIEWS_DELETE)),
    store: DocumentStore = Depends(get_store)
):
    return await reviews.delete_review(store, review_id)
