"""Tests for OrderRepository."""

from taswear.errors import BackendError, NotFoundError
from taswear.repositories import OrderRepository
from taswear.resource import Error, Success
from taswear.schemas import CartItem, Order, OrderStatus

from .conftest import UnreachableDatabase


def make_order(user_id="u1", *lines, address="1 Main St"):
    items = [CartItem(product_id=pid, product_name=pid, price=price, quantity=qty) for pid, price, qty in lines]
    return Order.from_cart(user_id, items, address)


class TestOrderRepository:
    async def test_create_and_read_back(self, order_repository):
        order = make_order("u1", ("tee", 12.0, 2), ("cap", 18.0, 1))
        assert order.total_amount == 42.0

        created = await order_repository.create(order)
        assert isinstance(created, Success)
        assert created.value

        fetched = await order_repository.get_by_id(created.value)
        assert fetched.value.id == created.value
        assert fetched.value.total_amount == 42.0
        assert fetched.value.status == "PENDING"
        assert [i.product_id for i in fetched.value.items] == ["tee", "cap"]
        assert fetched.value.created_at is not None

    async def test_create_ignores_caller_id(self, order_repository):
        order = make_order("u1", ("tee", 1.0, 1)).model_copy(update={"id": "mine"})
        created = await order_repository.create(order)
        assert created.value != "mine"

    async def test_total_is_not_recomputed(self, order_repository, db):
        created = await order_repository.create(make_order("u1", ("tee", 10.0, 1)))
        db["orders"].update_one({}, {"$set": {"items.0.price": 99.0}})
        fetched = await order_repository.get_by_id(created.value)
        assert fetched.value.total_amount == 10.0

    async def test_list_for_user_newest_first(self, order_repository):
        first = await order_repository.create(make_order("u1", ("a", 1.0, 1)))
        await order_repository.create(make_order("u2", ("b", 1.0, 1)))
        second = await order_repository.create(make_order("u1", ("c", 1.0, 1)))

        result = await order_repository.list_for_user("u1")
        assert [o.id for o in result.value] == [second.value, first.value]

    async def test_list_for_user_without_orders(self, order_repository):
        assert await order_repository.list_for_user("nobody") == Success([])

    async def test_list_all(self, order_repository):
        await order_repository.create(make_order("u1", ("a", 1.0, 1)))
        await order_repository.create(make_order("u2", ("b", 1.0, 1)))
        result = await order_repository.list_all()
        assert [o.user_id for o in result.value] == ["u2", "u1"]

    async def test_update_status_is_partial(self, order_repository):
        created = await order_repository.create(make_order("u1", ("a", 5.0, 3), address="Elm St"))
        assert await order_repository.update_status(created.value, OrderStatus.SHIPPED) == Success(None)

        fetched = (await order_repository.get_by_id(created.value)).value
        assert fetched.status == "SHIPPED"
        assert fetched.total_amount == 15.0
        assert fetched.shipping_address == "Elm St"

    async def test_update_status_does_not_validate_transition(self, order_repository):
        created = await order_repository.create(make_order("u1", ("a", 1.0, 1)))
        await order_repository.update_status(created.value, "DELIVERED")
        await order_repository.update_status(created.value, "PENDING")
        await order_repository.update_status(created.value, "RETURNED")
        assert (await order_repository.get_by_id(created.value)).value.status == "RETURNED"

    async def test_update_status_unknown_order(self, order_repository):
        result = await order_repository.update_status("64b7f0000000000000000000", "SHIPPED")
        assert isinstance(result, Error)
        assert isinstance(result.error, NotFoundError)
        assert result.message == "Order not found"

    async def test_get_missing(self, order_repository):
        result = await order_repository.get_by_id("64b7f0000000000000000000")
        assert isinstance(result.error, NotFoundError)

    async def test_backend_failure(self):
        repository = OrderRepository(UnreachableDatabase())
        result = await repository.create(make_order("u1", ("a", 1.0, 1)))
        assert isinstance(result, Error)
        assert isinstance(result.error, BackendError)
