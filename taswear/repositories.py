"""
Repositories over the document store.

Each repository owns the mapping between stored documents and entities and
reports every outcome as a Result. Exceptions from pymongo or the identity
provider stop here: callers only ever see Success or Error values.

Blocking pymongo calls run on a worker thread so the event loop that drives
the view-models is never blocked.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from bson.errors import InvalidId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .database import (
    NEWEST_FIRST,
    create_document,
    delete_document,
    find_document,
    get_documents,
    update_document,
)
from .errors import AuthError, BackendError, NotFoundError, ParseError, TASWearError
from .identity import IdentityProvider, Session
from .resource import Error, Result, Success
from .schemas import (
    ORDERS_COLLECTION,
    PRODUCTS_COLLECTION,
    USERS_COLLECTION,
    Entity,
    Order,
    OrderStatus,
    Product,
    User,
    UserRole,
)
from .streams import Subscription, poll

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Entity)


class Repository:
    """Shared call boundary: run blocking work off-loop, fold failures into Error."""

    backend_error: Type[TASWearError] = BackendError

    def __init__(self, db: Database):
        self._db = db

    async def _call(self, fn: Callable[..., T], *args: Any) -> Result[T]:
        try:
            return Success(await asyncio.to_thread(fn, *args))
        except TASWearError as e:
            return Error.of(e)
        except (PyMongoError, InvalidId) as e:
            logger.warning("%s: backend call %s failed: %s", type(self).__name__, fn.__name__, e)
            return Error.of(self.backend_error(str(e) or "Backend unavailable"))
        except Exception as e:
            logger.exception("%s: unexpected failure in %s", type(self).__name__, fn.__name__)
            return Error.of(self.backend_error(str(e) or "Unexpected backend failure"))

    def _parse_all(self, cls: Type[E], collection: str, docs: List[Dict[str, Any]]) -> List[E]:
        entities = []
        for doc in docs:
            try:
                entities.append(cls.from_document(doc, collection))
            except ParseError as e:
                logger.debug("Skipping document: %s", e)
        return entities

    def _parse_one(self, cls: Type[E], collection: str, doc: Dict[str, Any]) -> E:
        try:
            return cls.from_document(doc, collection)
        except ParseError as e:
            noun = collection.rstrip("s")
            raise NotFoundError(collection, e.doc_id, f"Failed to parse {noun} data") from e


class AuthRepository(Repository):
    """Identity sign-in/sign-up plus the matching ``users`` profile documents."""

    backend_error = AuthError

    def __init__(self, identity: IdentityProvider, db: Database):
        super().__init__(db)
        self._identity = identity

    def _load_profile(self, uid: str) -> User:
        try:
            doc = find_document(self._db, USERS_COLLECTION, uid)
        except NotFoundError:
            raise AuthError("User data not found")
        return self._parse_one(User, USERS_COLLECTION, doc)

    def _sign_in(self, email: str, password: str) -> User:
        session = self._identity.sign_in(email, password)
        try:
            return self._load_profile(session.uid)
        except TASWearError:
            self._identity.sign_out()
            raise

    def _sign_up(self, email: str, password: str, role: str, name: str) -> User:
        session = self._identity.create_account(email, password, name)
        profile = User(email=session.email, name=name, role=role)
        try:
            create_document(self._db, USERS_COLLECTION, profile.to_document(), doc_id=session.uid)
        except PyMongoError as e:
            # the account exists without a profile; nothing rolls it back
            logger.warning("Account %s created but profile write failed: %s", session.uid, e)
            self._identity.sign_out()
            raise AuthError(str(e) or "Registration failed")
        return self._load_profile(session.uid)

    def _authenticate(self, token: str) -> User:
        session = self._identity.verify_token(token)
        return self._load_profile(session.uid)

    def _role(self, user_id: str) -> str:
        doc = find_document(self._db, USERS_COLLECTION, user_id)
        return User.model_validate({"role": doc.get("role")}).role

    def _users(self) -> List[User]:
        docs = get_documents(self._db, USERS_COLLECTION, sort=NEWEST_FIRST)
        return self._parse_all(User, USERS_COLLECTION, docs)

    async def sign_in(self, email: str, password: str) -> Result[User]:
        return await self._call(self._sign_in, email, password)

    async def sign_up(
        self, email: str, password: str, role: str = UserRole.CUSTOMER.value, name: str = ""
    ) -> Result[User]:
        return await self._call(self._sign_up, email, password, role, name)

    def sign_out(self) -> None:
        self._identity.sign_out()

    def get_current_user(self) -> Optional[User]:
        """Last known local session, without a store read; role is not known here."""
        session: Optional[Session] = self._identity.current_session
        if session is None:
            return None
        return User(id=session.uid, email=session.email, name=session.display_name)

    async def get_user_role(self, user_id: str) -> Result[str]:
        return await self._call(self._role, user_id)

    async def list_users(self) -> Result[List[User]]:
        return await self._call(self._users)

    async def authenticate(self, token: str) -> Result[User]:
        return await self._call(self._authenticate, token)


class ProductRepository(Repository):
    """Catalog queries and admin writes over ``products``.

    Search fetches the whole collection and filters in process, which is
    fine for catalogs up to a few thousand documents and no further.
    """

    def __init__(self, db: Database, poll_interval: float = 2.0):
        super().__init__(db)
        self._poll_interval = poll_interval

    def _query(self, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Product]:
        docs = get_documents(self._db, PRODUCTS_COLLECTION, filter_dict, sort=NEWEST_FIRST, limit=limit)
        return self._parse_all(Product, PRODUCTS_COLLECTION, docs)

    def _search(self, term: str) -> List[Product]:
        return [p for p in self._query() if p.matches(term)]

    def _featured(self, limit: Optional[int] = None) -> List[Product]:
        return self._query({"featured": True}, limit)

    def _get(self, product_id: str) -> Product:
        doc = find_document(self._db, PRODUCTS_COLLECTION, product_id)
        return self._parse_one(Product, PRODUCTS_COLLECTION, doc)

    def _first_featured(self) -> Optional[Product]:
        featured = self._featured()
        return featured[0] if featured else None

    def _add(self, product: Product) -> str:
        product_id = create_document(self._db, PRODUCTS_COLLECTION, product.to_document(exclude=("created_at",)))
        logger.info("Added product %s", product_id)
        return product_id

    def _update(self, product_id: str, product: Product) -> None:
        update_document(self._db, PRODUCTS_COLLECTION, product_id, product.to_document(exclude=("created_at",)))

    def _delete(self, product_id: str) -> None:
        delete_document(self._db, PRODUCTS_COLLECTION, product_id)
        logger.info("Deleted product %s", product_id)

    async def list(self) -> Result[List[Product]]:
        return await self._call(self._query)

    async def list_by_category(self, category: str) -> Result[List[Product]]:
        return await self._call(self._query, {"category": category})

    async def search(self, term: str) -> Result[List[Product]]:
        return await self._call(self._search, term)

    async def list_featured(self, limit: Optional[int] = None) -> Result[List[Product]]:
        return await self._call(self._featured, limit)

    async def get_by_id(self, product_id: str) -> Result[Product]:
        return await self._call(self._get, product_id)

    async def get_featured(self) -> Result[Optional[Product]]:
        """Newest product flagged as featured, or Success(None) when none is."""
        return await self._call(self._first_featured)

    async def add(self, product: Product) -> Result[str]:
        return await self._call(self._add, product)

    async def update(self, product_id: str, product: Product) -> Result[None]:
        return await self._call(self._update, product_id, product)

    async def delete(self, product_id: str) -> Result[None]:
        return await self._call(self._delete, product_id)

    def _observe(self, fetch, name: str) -> Subscription[List[Product]]:
        return Subscription(poll(fetch, self._poll_interval), name=name)

    def observe_all(self) -> Subscription[List[Product]]:
        return self._observe(self.list, "products")

    def observe_category(self, category: str) -> Subscription[List[Product]]:
        return self._observe(lambda: self.list_by_category(category), f"products[category={category}]")

    def observe_search(self, term: str) -> Subscription[List[Product]]:
        return self._observe(lambda: self.search(term), f"products[search={term}]")

    def observe_featured(self, limit: int = 10) -> Subscription[List[Product]]:
        return self._observe(lambda: self.list_featured(limit), "products[featured]")


class OrderRepository(Repository):
    def _create(self, order: Order) -> str:
        order_id = create_document(self._db, ORDERS_COLLECTION, order.to_document(exclude=("created_at",)))
        logger.info("Created order %s for user %s", order_id, order.user_id)
        return order_id

    def _get(self, order_id: str) -> Order:
        doc = find_document(self._db, ORDERS_COLLECTION, order_id)
        return self._parse_one(Order, ORDERS_COLLECTION, doc)

    def _query(self, filter_dict: Optional[Dict[str, Any]] = None) -> List[Order]:
        docs = get_documents(self._db, ORDERS_COLLECTION, filter_dict, sort=NEWEST_FIRST)
        return self._parse_all(Order, ORDERS_COLLECTION, docs)

    def _set_status(self, order_id: str, status: str) -> None:
        update_document(self._db, ORDERS_COLLECTION, order_id, {"status": status})

    async def create(self, order: Order) -> Result[str]:
        """Store the order; the id comes from the store, never from ``order.id``."""
        return await self._call(self._create, order)

    async def get_by_id(self, order_id: str) -> Result[Order]:
        return await self._call(self._get, order_id)

    async def list_for_user(self, user_id: str) -> Result[List[Order]]:
        return await self._call(self._query, {"user_id": user_id})

    async def list_all(self) -> Result[List[Order]]:
        return await self._call(self._query)

    async def update_status(self, order_id: str, status: str) -> Result[None]:
        """Partial update of ``status`` only; transitions are not checked."""
        if isinstance(status, OrderStatus):
            status = status.value
        return await self._call(self._set_status, order_id, status)
