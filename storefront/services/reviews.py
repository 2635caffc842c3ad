"""
Storefront - Reviews
One review per completed order, mirrored under the order and aggregated
onto the product by full recount.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from storefront.core.database import DocumentStore, now_iso, subcollection
from storefront.core.errors import ConflictError, Forbidden, NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

COLLECTION = "productReviews"
MAX_COMMENT_LENGTH = 500


def mask_email(email: Optional[str]) -> str:
    return f"{email[:4]}****" if email else "guest****"


def average_rating(total: int, count: int) -> float:
    """Mean to one decimal, halves rounded up (2.25 -> 2.3)"""
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


async def recompute_rating(store: DocumentStore, product_slug: str) -> Optional[Dict[str, Any]]:
    """Recount every remaining review of a product and store the aggregate"""
    products = await store.where("products", "slug", product_slug, limit=1)
    if not products:
        return None

    reviews = await store.where(COLLECTION, "productSlug", product_slug)
    if reviews:
        total = sum(int(r.data.get("rating") or 0) for r in reviews)
        aggregate = {
            "averageRating": average_rating(total, len(reviews)),
            "totalReviews": len(reviews),
        }
    else:
        aggregate = {"averageRating": 0, "totalReviews": 0}

    await store.update("products", products[0].id, {**aggregate, "updatedAt": now_iso()})
    logger.info(
        f"✅ Updated product {product_slug} rating: "
        f"{aggregate['averageRating']} ({aggregate['totalReviews']} reviews)"
    )
    return aggregate


async def submit_review(
    store: DocumentStore,
    order_id: str,
    rating: int,
    comment: str = "",
    user_id: Optional[str] = None
) -> Dict[str, Any]:
    if not order_id:
        raise ValidationFailed("Order ID is required")
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationFailed("Rating must be between 1 and 5")
    comment = (comment or "").strip()
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationFailed(f"Comment must be maximum {MAX_COMMENT_LENGTH} characters")

    order = await store.get("orders", order_id)
    if order is None:
        raise NotFoundError("Order not found")

    owner = order.data.get("userId")
    if user_id and owner and owner != user_id:
        raise Forbidden("You cannot review this order")
    if order.data.get("status") != "COMPLETED":
        raise Forbidden("You cannot review this order")

    mirror = subcollection("orders", order_id, "review")
    if await store.all(mirror):
        raise ConflictError("This order has already been reviewed")

    created_at = now_iso()
    await store.add(mirror, {"rating": rating, "comment": comment, "createdAt": created_at})

    product_slug = order.data.get("productSlug")
    review = await store.add(COLLECTION, {
        "productSlug": product_slug,
        "orderId": order_id,
        "userId": owner or "guest",
        "customerEmail": (order.data.get("customer") or {}).get("email") or order.data.get("customerEmail") or "",
        "rating": rating,
        "comment": comment,
        "createdAt": created_at,
    })

    if product_slug:
        await recompute_rating(store, product_slug)

    logger.info(f"✅ Review submitted for order {order_id} - Rating: {rating}")
    return {"ok": True, "message": "Review saved", "reviewId": review.id}


async def list_reviews(
    store: DocumentStore,
    product_slug: Optional[str] = None,
    limit: int = 10
) -> List[Dict[str, Any]]:
    """Newest first, with emails masked"""
    if product_slug:
        docs = await store.where(COLLECTION, "productSlug", product_slug)
    else:
        docs = await store.all(COLLECTION)
    docs.sort(key=lambda d: d.data.get("createdAt") or "", reverse=True)

    return [
        {
            "id": doc.id,
            "productSlug": doc.data.get("productSlug"),
            "orderId": doc.data.get("orderId"),
            "rating": doc.data.get("rating"),
            "comment": doc.data.get("comment"),
            "maskedEmail": mask_email(doc.data.get("customerEmail")),
            "createdAt": doc.data.get("createdAt"),
        }
        for doc in docs[:max(limit, 0)]
    ]


async def delete_review(store: DocumentStore, review_id: str) -> Dict[str, Any]:
    review = await store.get(COLLECTION, review_id)
    if review is None:
        raise NotFoundError("Review not found")

    order_id = review.data.get("orderId")
    if order_id:
        await store.delete_many(subcollection("orders", order_id, "review"))
    await store.delete(COLLECTION, review_id)

    product_slug = review.data.get("productSlug")
    if product_slug:
        await recompute_rating(store, product_slug)

    logger.info(f"✅ Review {review_id} deleted by admin")
    return {"ok": True, "message": "Review deleted"}
