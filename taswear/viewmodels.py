"""
View-models: observable screen state plus the intents that change it.

Every view-model exposes read-only StateFlows and mutates them only from its
own intent handlers. Repository work runs in tasks owned by the view-model;
``close()`` cancels all of it, live catalog subscriptions included.

Intents don't cancel earlier in-flight calls of the same kind. Two rapid
searches race and whichever finishes last writes the state.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set, Tuple, Union

from .errors import ValidationError
from .repositories import AuthRepository, OrderRepository, ProductRepository
from .resource import Error, Loading, Resource, Result, Success
from .schemas import CartItem, Order, Product, User, UserRole, cart_total
from .streams import StateFlow, Subscription

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class ViewModel:
    """Owns the lifetime of the work its intents start."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self._collectors: Dict[str, Tuple[Subscription, asyncio.Task]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def launch(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        if self._closed:
            coro.close()
            raise RuntimeError(f"{type(self).__name__} is closed")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def collect(self, key: str, subscription: Subscription, flow: StateFlow) -> None:
        """Pipe a subscription into ``flow``, replacing any live one under ``key``."""
        self.stop_collecting(key)

        async def pump() -> None:
            async for resource in subscription:
                flow.value = resource

        task = asyncio.get_running_loop().create_task(pump())
        self._collectors[key] = (subscription, task)

    def stop_collecting(self, key: str) -> None:
        entry = self._collectors.pop(key, None)
        if entry is not None:
            subscription, task = entry
            subscription.cancel()
            task.cancel()

    async def join(self) -> None:
        """Wait for launched intents, including ones they launch in turn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for key in list(self._collectors):
            self.stop_collecting(key)
        for task in list(self._tasks):
            task.cancel()

    async def __aenter__(self) -> "ViewModel":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        pending = list(self._tasks) + [task for _, task in self._collectors.values()]
        self.close()
        await asyncio.gather(*pending, return_exceptions=True)


# Auth


@dataclass(frozen=True)
class AuthInitial:
    pass


@dataclass(frozen=True)
class Unauthenticated:
    pass


@dataclass(frozen=True)
class Guest:
    pass


@dataclass(frozen=True)
class Authenticated:
    user: User


AuthState = Union[AuthInitial, Loading, Unauthenticated, Guest, Authenticated, Error]


def _invalid(message: str) -> Error:
    return Error(message, ValidationError(message))


class AuthViewModel(ViewModel):
    def __init__(self, auth_repository: AuthRepository):
        super().__init__()
        self._repository = auth_repository
        self._auth_state: StateFlow[AuthState] = StateFlow(AuthInitial())
        self._current_user: StateFlow[Optional[User]] = StateFlow(None)
        self._is_guest_mode: StateFlow[bool] = StateFlow(True)
        self.auth_state = self._auth_state.as_read_only()
        self.current_user = self._current_user.as_read_only()
        self.is_guest_mode = self._is_guest_mode.as_read_only()
        self._check_auth_status()

    def _check_auth_status(self) -> None:
        user = self._repository.get_current_user()
        if user is not None:
            self._set_user(user)
        else:
            self._is_guest_mode.value = True
            self._auth_state.value = Unauthenticated()

    def _set_user(self, user: User) -> None:
        self._current_user.value = user
        self._is_guest_mode.value = False
        self._auth_state.value = Authenticated(user)

    def _apply(self, result: Result[User]) -> None:
        if isinstance(result, Success):
            self._set_user(result.value)
        else:
            self._auth_state.value = result

    def sign_in(self, email: str, password: str) -> Optional[asyncio.Task]:
        if not email.strip() or not password.strip():
            self._auth_state.value = _invalid("Email and password cannot be empty")
            return None

        async def run() -> None:
            self._auth_state.value = Loading()
            self._apply(await self._repository.sign_in(email, password))

        return self.launch(run())

    def sign_up(
        self, email: str, password: str, role: str = UserRole.CUSTOMER.value, name: str = ""
    ) -> Optional[asyncio.Task]:
        if not email.strip() or not password.strip():
            self._auth_state.value = _invalid("Email and password cannot be empty")
            return None
        if len(password) < MIN_PASSWORD_LENGTH:
            self._auth_state.value = _invalid(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
            return None

        async def run() -> None:
            self._auth_state.value = Loading()
            self._apply(await self._repository.sign_up(email, password, role, name))

        return self.launch(run())

    def sign_out(self) -> None:
        self._repository.sign_out()
        self._current_user.value = None
        self._is_guest_mode.value = True
        self._auth_state.value = Unauthenticated()

    def continue_as_guest(self) -> None:
        self._is_guest_mode.value = True
        self._auth_state.value = Guest()

    def reset_auth_state(self) -> None:
        user = self._current_user.value
        self._auth_state.value = Authenticated(user) if user is not None else Unauthenticated()


# Catalog

ProductsState = Resource[List[Product]]


class HomeViewModel(ViewModel):
    """Live featured-products feed for the home screen."""

    def __init__(self, product_repository: ProductRepository, limit: int = 10, autoload: bool = True):
        super().__init__()
        self._repository = product_repository
        self._limit = limit
        self._featured_products: StateFlow[ProductsState] = StateFlow(Loading())
        self.featured_products = self._featured_products.as_read_only()
        if autoload:
            self.refresh()

    def refresh(self) -> None:
        self._featured_products.value = Loading()
        self.collect("featured", self._repository.observe_featured(self._limit), self._featured_products)


class ProductViewModel(ViewModel):
    def __init__(self, product_repository: ProductRepository, autoload: bool = True):
        super().__init__()
        self._repository = product_repository
        self._products_state: StateFlow[ProductsState] = StateFlow(Loading())
        self._featured_product: StateFlow[Optional[Product]] = StateFlow(None)
        self._selected_category: StateFlow[Optional[str]] = StateFlow(None)
        self._search_query: StateFlow[str] = StateFlow("")
        self._selected_product: StateFlow[Optional[Resource[Product]]] = StateFlow(None)
        self._write_state: StateFlow[Optional[Resource[Any]]] = StateFlow(None)
        self.products_state = self._products_state.as_read_only()
        self.featured_product = self._featured_product.as_read_only()
        self.selected_category = self._selected_category.as_read_only()
        self.search_query = self._search_query.as_read_only()
        self.selected_product = self._selected_product.as_read_only()
        self.write_state = self._write_state.as_read_only()
        if autoload:
            self.load_products()
            self.load_featured_product()

    def _load(self, fetch: Callable[[], Coroutine[Any, Any, Result[List[Product]]]]) -> asyncio.Task:
        async def run() -> None:
            self._products_state.value = Loading()
            self._products_state.value = await fetch()

        return self.launch(run())

    def load_products(self) -> asyncio.Task:
        self._selected_category.value = None
        self._search_query.value = ""
        return self._load(self._repository.list)

    def load_products_by_category(self, category: str) -> asyncio.Task:
        self._selected_category.value = category
        self._search_query.value = ""
        return self._load(lambda: self._repository.list_by_category(category))

    def search_products(self, query: str) -> asyncio.Task:
        if not query.strip():
            return self.load_products()
        self._selected_category.value = None
        self._search_query.value = query
        return self._load(lambda: self._repository.search(query))

    def clear_category_filter(self) -> asyncio.Task:
        return self.load_products()

    def load_featured_product(self) -> asyncio.Task:
        async def run() -> None:
            result = await self._repository.get_featured()
            if isinstance(result, Success):
                self._featured_product.value = result.value
            else:
                logger.warning("Featured product unavailable: %s", result.message)

        return self.launch(run())

    def load_product(self, product_id: str) -> asyncio.Task:
        async def run() -> None:
            self._selected_product.value = Loading()
            self._selected_product.value = await self._repository.get_by_id(product_id)

        return self.launch(run())

    def _write(self, call: Callable[[], Coroutine[Any, Any, Result[Any]]]) -> asyncio.Task:
        async def run() -> None:
            self._write_state.value = Loading()
            result = await call()
            self._write_state.value = result
            if isinstance(result, Success):
                await self.load_products()

        return self.launch(run())

    def add_product(self, product: Product) -> asyncio.Task:
        return self._write(lambda: self._repository.add(product))

    def update_product(self, product_id: str, product: Product) -> asyncio.Task:
        return self._write(lambda: self._repository.update(product_id, product))

    def delete_product(self, product_id: str) -> asyncio.Task:
        return self._write(lambda: self._repository.delete(product_id))


# Cart


class CartViewModel(ViewModel):
    """In-memory cart; the total is always derived from the lines."""

    def __init__(self) -> None:
        super().__init__()
        self._cart_items: StateFlow[List[CartItem]] = StateFlow([])
        self._total_amount: StateFlow[float] = StateFlow(0.0)
        self.cart_items = self._cart_items.as_read_only()
        self.total_amount = self._total_amount.as_read_only()

    def _publish(self, items: List[CartItem]) -> None:
        self._cart_items.value = items
        self._total_amount.value = cart_total(items)

    def add_to_cart(self, item: CartItem) -> None:
        items = list(self._cart_items.value)
        for i, existing in enumerate(items):
            if existing.product_id == item.product_id:
                items[i] = existing.model_copy(update={"quantity": existing.quantity + item.quantity})
                break
        else:
            items.append(item)
        self._publish(items)

    def remove_from_cart(self, product_id: str) -> None:
        self._publish([it for it in self._cart_items.value if it.product_id != product_id])

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_from_cart(product_id)
            return
        items = [
            it.model_copy(update={"quantity": quantity}) if it.product_id == product_id else it
            for it in self._cart_items.value
        ]
        self._publish(items)

    def clear_cart(self) -> None:
        self._publish([])

    def item_count(self) -> int:
        return sum(it.quantity for it in self._cart_items.value)


# Orders


@dataclass(frozen=True)
class OrdersInitial:
    pass


@dataclass(frozen=True)
class OrdersLoaded:
    pass


@dataclass(frozen=True)
class OrderCreated:
    order_id: str


OrdersState = Union[OrdersInitial, Loading, OrdersLoaded, OrderCreated, Error]


class OrderViewModel(ViewModel):
    def __init__(self, order_repository: OrderRepository):
        super().__init__()
        self._repository = order_repository
        self._orders_state: StateFlow[OrdersState] = StateFlow(OrdersInitial())
        self._user_orders: StateFlow[List[Order]] = StateFlow([])
        self._selected_order: StateFlow[Optional[Resource[Order]]] = StateFlow(None)
        self.orders_state = self._orders_state.as_read_only()
        self.user_orders = self._user_orders.as_read_only()
        self.selected_order = self._selected_order.as_read_only()
        self._current_user_id: Optional[str] = None

    def create_order(self, order: Order, on_success: Optional[Callable[[str], None]] = None) -> asyncio.Task:
        async def run() -> None:
            self._orders_state.value = Loading()
            result = await self._repository.create(order)
            if isinstance(result, Success):
                if on_success is not None:
                    on_success(result.value)
                self._orders_state.value = OrderCreated(result.value)
            else:
                self._orders_state.value = result

        return self.launch(run())

    def checkout(self, user_id: str, cart: CartViewModel, shipping_address: str) -> Optional[asyncio.Task]:
        """Turn the cart into an order; the cart is cleared once the order exists."""
        items = cart.cart_items.value
        if not items:
            self._orders_state.value = _invalid("Cart is empty")
            return None
        if not shipping_address.strip():
            self._orders_state.value = _invalid("Shipping address cannot be empty")
            return None
        order = Order.from_cart(user_id, items, shipping_address.strip())
        return self.create_order(order, on_success=lambda _: cart.clear_cart())

    def _load(self, fetch: Callable[[], Coroutine[Any, Any, Result[List[Order]]]]) -> asyncio.Task:
        async def run() -> None:
            self._orders_state.value = Loading()
            result = await fetch()
            if isinstance(result, Success):
                self._user_orders.value = result.value
                self._orders_state.value = OrdersLoaded()
            else:
                self._orders_state.value = result

        return self.launch(run())

    def load_user_orders(self, user_id: str) -> asyncio.Task:
        self._current_user_id = user_id
        return self._load(lambda: self._repository.list_for_user(user_id))

    def load_all_orders(self) -> asyncio.Task:
        return self._load(self._repository.list_all)

    def load_order(self, order_id: str) -> asyncio.Task:
        async def run() -> None:
            self._selected_order.value = Loading()
            self._selected_order.value = await self._repository.get_by_id(order_id)

        return self.launch(run())

    def update_order_status(self, order_id: str, status: str) -> asyncio.Task:
        async def run() -> None:
            result = await self._repository.update_status(order_id, status)
            if isinstance(result, Error):
                self._orders_state.value = result
            elif self._current_user_id is not None:
                self.load_user_orders(self._current_user_id)

        return self.launch(run())

    def reset_state(self) -> None:
        self._orders_state.value = OrdersInitial()
