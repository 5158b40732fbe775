"""
Composition root.

Builds the database handle, the identity provider and the repositories once
per container and hands them to view-models by constructor injection.
"""

from functools import cached_property
from typing import Optional

from pymongo.database import Database

from .database import connect
from .identity import IdentityProvider
from .repositories import AuthRepository, OrderRepository, ProductRepository
from .settings import Settings
from .viewmodels import AuthViewModel, CartViewModel, HomeViewModel, OrderViewModel, ProductViewModel


class AppContainer:
    def __init__(self, settings: Optional[Settings] = None, database: Optional[Database] = None):
        self.settings = settings or Settings.from_env()
        self._database = database

    @cached_property
    def database(self) -> Database:
        return self._database if self._database is not None else connect(self.settings)

    @cached_property
    def identity(self) -> IdentityProvider:
        return IdentityProvider(self.database, self.settings)

    @cached_property
    def auth_repository(self) -> AuthRepository:
        return AuthRepository(self.identity, self.database)

    @cached_property
    def product_repository(self) -> ProductRepository:
        return ProductRepository(self.database, poll_interval=self.settings.catalog_poll_interval)

    @cached_property
    def order_repository(self) -> OrderRepository:
        return OrderRepository(self.database)

    def auth_view_model(self) -> AuthViewModel:
        return AuthViewModel(self.auth_repository)

    def home_view_model(self, autoload: bool = True) -> HomeViewModel:
        return HomeViewModel(self.product_repository, limit=self.settings.featured_products_limit, autoload=autoload)

    def product_view_model(self, autoload: bool = True) -> ProductViewModel:
        return ProductViewModel(self.product_repository, autoload=autoload)

    def cart_view_model(self) -> CartViewModel:
        return CartViewModel()

    def order_view_model(self) -> OrderViewModel:
        return OrderViewModel(self.order_repository)
