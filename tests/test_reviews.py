import pytest

from storefront.core.errors import ConflictError, Forbidden, NotFoundError, ValidationFailed
from storefront.services import reviews


@pytest.fixture
async def product(store):
    return await store.add("products", {"slug": "netflix-premium", "status": "ACTIVE"})


async def completed_order(store, order_data, order_id, **overrides):
    await store.set("orders", order_id, order_data(status="COMPLETED", **overrides))


async def test_submit_updates_aggregate(store, product, order_data):
    await completed_order(store, order_data, "JMB1")
    await completed_order(store, order_data, "JMB2")

    await reviews.submit_review(store, "JMB1", 5, "Mantap")
    await reviews.submit_review(store, "JMB2", 4, "Oke")

    stored = (await store.get("products", product.id)).data
    assert stored["averageRating"] == 4.5
    assert stored["totalReviews"] == 2
    assert len(await store.all("orders/JMB1/review")) == 1


async def test_submit_requires_completed_order(store, product, order_data):
    await store.set("orders", "JMB1", order_data(status="PENDING"))
    with pytest.raises(Forbidden):
        await reviews.submit_review(store, "JMB1", 5)


async def test_submit_checks_owner(store, product, order_data):
    await completed_order(store, order_data, "JMB1")
    with pytest.raises(Forbidden):
        await reviews.submit_review(store, "JMB1", 5, user_id="intruder")


async def test_one_review_per_order(store, product, order_data):
    await completed_order(store, order_data, "JMB1")
    await reviews.submit_review(store, "JMB1", 5)
    with pytest.raises(ConflictError):
        await reviews.submit_review(store, "JMB1", 1)


@pytest.mark.parametrize("rating", [0, 6])
async def test_rating_bounds(store, rating):
    with pytest.raises(ValidationFailed):
        await reviews.submit_review(store, "JMB1", rating)


async def test_submit_unknown_order(store):
    with pytest.raises(NotFoundError):
        await reviews.submit_review(store, "JMB404", 5)


async def test_delete_recounts_remaining(store, product, order_data):
    for order_id in ("JMB1", "JMB2", "JMB3"):
        await completed_order(store, order_data, order_id)
    await reviews.submit_review(store, "JMB1", 5)
    await reviews.submit_review(store, "JMB2", 4)
    third = await reviews.submit_review(store, "JMB3", 4)

    await reviews.delete_review(store, third["reviewId"])

    stored = (await store.get("products", product.id)).data
    assert stored["totalReviews"] == 2
    assert stored["averageRating"] == 4.5
    assert await store.all("orders/JMB3/review") == []


async def test_delete_last_review_resets_aggregate(store, product, order_data):
    await completed_order(store, order_data, "JMB1")
    review = await reviews.submit_review(store, "JMB1", 3)

    await reviews.delete_review(store, review["reviewId"])

    stored = (await store.get("products", product.id)).data
    assert stored["averageRating"] == 0
    assert stored["totalReviews"] == 0


async def test_average_rounds_to_one_decimal(store, product, order_data):
    for order_id, rating in (("JMB1", 5), ("JMB2", 4), ("JMB3", 4)):
        await completed_order(store, order_data, order_id)
        await reviews.submit_review(store, order_id, rating)

    assert (await store.get("products", product.id)).data["averageRating"] == 4.3


async def test_delete_unknown_review(store):
    with pytest.raises(NotFoundError):
        await reviews.delete_review(store, "missing")


async def test_list_masks_emails(store, product, order_data):
    await completed_order(store, order_data, "JMB1")
    await reviews.submit_review(store, "JMB1", 5, "Mantap")

    listed = await reviews.list_reviews(store, "netflix-premium")

    assert listed[0]["maskedEmail"] == "budi****"
    assert "customerEmail" not in listed[0]
    assert await reviews.list_reviews(store, "other-product") == []


async def test_average_rounds_half_up(store, product, order_data):
    for index, rating in enumerate((1, 2, 2, 4), start=1):
        order_id = f"JMB{index}"
        await completed_order(store, order_data, order_id)
        await reviews.submit_review(store, order_id, rating)

    assert (await store.get("products", product.id)).data["averageRating"] == 2.3


@pytest.mark.parametrize("total,count,expected", [(9, 4, 2.3), (13, 3, 4.3), (7, 2, 3.5), (19, 4, 4.8)])
def test_average_rating(total, count, expected):
    assert reviews.average_rating(total, count) == expected
