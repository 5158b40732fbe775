"""
HTTP shell over the view-models.

Each request builds the view-model its screen would use, runs one intent,
waits for it and renders the resulting state. Carts are kept per signed-in
user for the life of the process.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field

from .container import AppContainer
from .errors import AuthError, NotFoundError, ValidationError
from .resource import Error, Resource, Success
from .schemas import CartItem, Product, User, UserRole
from .settings import Settings, configure_logging
from .viewmodels import Authenticated, CartViewModel, OrderCreated

logger = logging.getLogger(__name__)


def _status_for(error: Error) -> int:
    if isinstance(error.error, ValidationError):
        return 400
    if isinstance(error.error, AuthError):
        return 401
    if isinstance(error.error, NotFoundError):
        return 404
    return 503


def _unwrap(resource: Optional[Resource[Any]]) -> Any:
    if isinstance(resource, Success):
        return resource.value
    if isinstance(resource, Error):
        raise HTTPException(status_code=_status_for(resource), detail=resource.message)
    raise HTTPException(status_code=504, detail="Request did not complete")


# Request bodies
class RegisterInput(BaseModel):
    name: str = ""
    email: EmailStr
    password: str


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class ProductIn(BaseModel):
    name: str
    description: str = ""
    brand: str = ""
    price: float = Field(..., ge=0)
    image_urls: List[str] = []
    category: str = ""
    sizes: List[str] = []
    colors: List[str] = []
    stock: int = Field(0, ge=0)
    featured: bool = False


class CartAdd(BaseModel):
    product_id: str
    quantity: int = 1
    size: str = ""
    color: str = ""


class CartUpdate(BaseModel):
    product_id: str
    quantity: int


class CheckoutInput(BaseModel):
    shipping_address: str


class StatusInput(BaseModel):
    status: str


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    app = FastAPI(title="TASWear API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.container = container or AppContainer()
    app.state.carts = {}

    def get_container(request: Request) -> AppContainer:
        return request.app.state.container

    async def get_current_user(
        authorization: Optional[str] = Header(default=None),
        container: AppContainer = Depends(get_container),
    ) -> User:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Not authenticated")
        token = authorization.split(" ", 1)[1]
        return _unwrap(await container.auth_repository.authenticate(token))

    def require_admin(user: User = Depends(get_current_user)) -> User:
        if not user.is_admin:
            raise HTTPException(status_code=403, detail="Admins only")
        return user

    def cart_for(user: User = Depends(get_current_user)) -> CartViewModel:
        carts = app.state.carts
        if user.id not in carts:
            carts[user.id] = CartViewModel()
        return carts[user.id]

    def render_cart(cart: CartViewModel) -> Dict[str, Any]:
        return {"items": cart.cart_items.value, "total": cart.total_amount.value, "count": cart.item_count()}

    @app.get("/")
    def read_root():
        return {"message": "TASWear API"}

    @app.get("/test")
    def test_database(container: AppContainer = Depends(get_container)):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": None,
            "collections": [],
        }
        try:
            db = container.database
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected"
        except Exception as e:
            response["database"] = f"❌ Error: {str(e)[:80]}"
        return response

    # Auth
    async def _auth(container: AppContainer, intent: str, *args: Any) -> Dict[str, Any]:
        async with container.auth_view_model() as vm:
            getattr(vm, intent)(*args)
            await vm.join()
            state = vm.auth_state.value
        if isinstance(state, Error):
            _unwrap(state)
        if not isinstance(state, Authenticated):
            raise HTTPException(status_code=500, detail="Unexpected auth state")
        # the provider session is shared by every request; sign the token for this caller
        token = container.identity.issue_token(state.user.id)
        return {"access_token": token, "token_type": "bearer", "user": state.user}

    @app.post("/auth/register")
    async def register(payload: RegisterInput, container: AppContainer = Depends(get_container)):
        return await _auth(container, "sign_up", payload.email, payload.password, UserRole.CUSTOMER.value, payload.name)

    @app.post("/auth/login")
    async def login(payload: LoginInput, container: AppContainer = Depends(get_container)):
        return await _auth(container, "sign_in", payload.email, payload.password)

    @app.get("/auth/me")
    def me(current_user: User = Depends(get_current_user)):
        return current_user

    # Products
    @app.get("/products")
    async def list_products(
        q: Optional[str] = None,
        category: Optional[str] = None,
        container: AppContainer = Depends(get_container),
    ):
        async with container.product_view_model(autoload=False) as vm:
            if category:
                vm.load_products_by_category(category)
            else:
                vm.search_products(q or "")
            await vm.join()
            return {"items": _unwrap(vm.products_state.value)}

    @app.get("/products/featured")
    async def featured_product(container: AppContainer = Depends(get_container)):
        return {"product": _unwrap(await container.product_repository.get_featured())}

    @app.get("/products/{product_id}")
    async def get_product(product_id: str, container: AppContainer = Depends(get_container)):
        async with container.product_view_model(autoload=False) as vm:
            vm.load_product(product_id)
            await vm.join()
            return _unwrap(vm.selected_product.value)

    async def _write_product(container: AppContainer, intent: str, *args: Any) -> Any:
        async with container.product_view_model(autoload=False) as vm:
            getattr(vm, intent)(*args)
            await vm.join()
            return _unwrap(vm.write_state.value)

    @app.post("/products")
    async def create_product(
        data: ProductIn, _: User = Depends(require_admin), container: AppContainer = Depends(get_container)
    ):
        return {"id": await _write_product(container, "add_product", Product(**data.model_dump()))}

    @app.put("/products/{product_id}")
    async def update_product(
        product_id: str,
        data: ProductIn,
        _: User = Depends(require_admin),
        container: AppContainer = Depends(get_container),
    ):
        await _write_product(container, "update_product", product_id, Product(**data.model_dump()))
        return {"ok": True}

    @app.delete("/products/{product_id}")
    async def delete_product(
        product_id: str, _: User = Depends(require_admin), container: AppContainer = Depends(get_container)
    ):
        await _write_product(container, "delete_product", product_id)
        return {"ok": True}

    # Cart
    @app.get("/cart")
    def get_cart(cart: CartViewModel = Depends(cart_for)):
        return render_cart(cart)

    @app.post("/cart")
    async def add_to_cart(
        item: CartAdd, cart: CartViewModel = Depends(cart_for), container: AppContainer = Depends(get_container)
    ):
        if item.quantity < 1:
            raise HTTPException(status_code=400, detail="Quantity must be at least 1")
        product = _unwrap(await container.product_repository.get_by_id(item.product_id))
        cart.add_to_cart(CartItem.from_product(product, item.quantity, item.size, item.color))
        return render_cart(cart)

    @app.patch("/cart")
    def update_cart(item: CartUpdate, cart: CartViewModel = Depends(cart_for)):
        cart.update_quantity(item.product_id, item.quantity)
        return render_cart(cart)

    @app.delete("/cart/{product_id}")
    def remove_from_cart(product_id: str, cart: CartViewModel = Depends(cart_for)):
        cart.remove_from_cart(product_id)
        return render_cart(cart)

    @app.delete("/cart")
    def clear_cart(cart: CartViewModel = Depends(cart_for)):
        cart.clear_cart()
        return render_cart(cart)

    # Orders
    @app.post("/orders")
    async def checkout(
        payload: CheckoutInput,
        current_user: User = Depends(get_current_user),
        cart: CartViewModel = Depends(cart_for),
        container: AppContainer = Depends(get_container),
    ):
        async with container.order_view_model() as vm:
            vm.checkout(current_user.id, cart, payload.shipping_address)
            await vm.join()
            state = vm.orders_state.value
        if isinstance(state, OrderCreated):
            return {"id": state.order_id}
        return _unwrap(state)

    @app.get("/orders")
    async def my_orders(current_user: User = Depends(get_current_user), container: AppContainer = Depends(get_container)):
        async with container.order_view_model() as vm:
            vm.load_user_orders(current_user.id)
            await vm.join()
            if isinstance(vm.orders_state.value, Error):
                _unwrap(vm.orders_state.value)
            return {"orders": vm.user_orders.value}

    @app.get("/orders/{order_id}")
    async def order_detail(
        order_id: str, current_user: User = Depends(get_current_user), container: AppContainer = Depends(get_container)
    ):
        async with container.order_view_model() as vm:
            vm.load_order(order_id)
            await vm.join()
            order = _unwrap(vm.selected_order.value)
        if order.user_id != current_user.id and not current_user.is_admin:
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    @app.get("/admin/orders")
    async def admin_orders(_: User = Depends(require_admin), container: AppContainer = Depends(get_container)):
        async with container.order_view_model() as vm:
            vm.load_all_orders()
            await vm.join()
            if isinstance(vm.orders_state.value, Error):
                _unwrap(vm.orders_state.value)
            return {"orders": vm.user_orders.value}

    @app.patch("/orders/{order_id}/status")
    async def update_order_status(
        order_id: str,
        payload: StatusInput,
        _: User = Depends(require_admin),
        container: AppContainer = Depends(get_container),
    ):
        async with container.order_view_model() as vm:
            vm.update_order_status(order_id, payload.status)
            await vm.join()
            if isinstance(vm.orders_state.value, Error):
                _unwrap(vm.orders_state.value)
        return {"ok": True}

    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(AppContainer(settings)), host="0.0.0.0", port=settings.port)
