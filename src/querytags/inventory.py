"""Inventory dashboard endpoints: products, dashboard metrics, users, expenses."""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

from querytags.api import ApiSlice, mutation_endpoint, query_endpoint
from querytags.client import QueryClient
from querytags.policy import QueryPolicy
from querytags.tags import define_tags
from querytags.transport import HttpTransport, Route
from querytags.types import Request, Tag


class Product(TypedDict):
    productId: str
    name: str
    price: float
    stockQuantity: int
    rating: NotRequired[float | None]
    createdAt: NotRequired[str]
    updatedAt: NotRequired[str]


class NewProduct(TypedDict):
    name: str
    price: float
    stockQuantity: int
    rating: NotRequired[float | None]


class SalesSummary(TypedDict):
    salesSummaryId: str
    totalValue: float
    date: str
    changePercentage: NotRequired[float]


class PurchaseSummary(TypedDict):
    purchaseSummaryId: str
    totalPurchased: float
    date: str
    changePercentage: NotRequired[float]


class ExpenseSummary(TypedDict):
    # Field name matches the backend, typo included
    expenseSummarId: str
    totalExpenses: float
    date: str


class ExpenseByCategorySummary(TypedDict):
    expenseByCategorySummaryId: str
    category: str
    amount: str  # the backend sends a decimal string
    date: str


class DashboardMetrics(TypedDict):
    popularProducts: list[Product]
    salesSummary: list[SalesSummary]
    purchaseSummary: list[PurchaseSummary]
    expenseSummary: list[ExpenseSummary]
    expenseByCategorySummary: list[ExpenseByCategorySummary]


class User(TypedDict):
    userId: str
    name: str
    email: str


inventory_tags = define_tags(
    {
        "dashboard": lambda: ("DashboardMetrics",),
        "products": lambda: ("Products",),
        "product": lambda id: ("Products", id),
        "product_list": lambda: ("Products", "LIST"),
        "users": lambda: ("Users",),
        "expenses": lambda: ("Expenses",),
    }
)

INVENTORY_ROUTES: dict[str, Route] = {
    "get_dashboard_metrics": Route("GET", "/dashboard"),
    "get_products": Route("GET", "/products"),
    "create_product": Route("POST", "/products"),
    "update_product": Route("PUT", "/products/{id}"),
    "delete_product": Route("DELETE", "/products/{id}"),
    "get_users": Route("GET", "/users"),
    "get_expenses_by_category": Route("GET", "/expenses"),
}


def product_list_tags(result: Any, args: Any) -> list[Tag]:
    """One tag per returned product plus the list tag."""
    product = inventory_tags["product"]
    listing = inventory_tags["product_list"]()
    if isinstance(result, list):
        return [*(product(p["productId"]) for p in result if "productId" in p), listing]
    return [listing]


def product_change_tags(result: Any, args: Any) -> list[Tag]:
    return [inventory_tags["product"](args["id"]), inventory_tags["product_list"]()]


class InventoryApi(ApiSlice):
    """Endpoints of the inventory backend."""

    @query_endpoint(provides=[inventory_tags["dashboard"]()])
    def get_dashboard_metrics(self) -> None:
        return None

    @query_endpoint(
        provides=product_list_tags,
        policy=QueryPolicy(retention_window="60s"),
    )
    def get_products(self, search: str | None = None) -> dict[str, str] | None:
        return {"search": search} if search else None

    @mutation_endpoint(invalidates=[inventory_tags["product_list"]()])
    def create_product(self, product: NewProduct) -> Request:
        return Request(body=dict(product))

    @mutation_endpoint(invalidates=product_change_tags)
    def update_product(self, id: str, body: dict[str, Any]) -> Request:
        return Request(args={"id": id}, body=body)

    @mutation_endpoint(invalidates=product_change_tags)
    def delete_product(self, id: str) -> Request:
        return Request(args={"id": id})

    @query_endpoint(provides=[inventory_tags["users"]()])
    def get_users(self) -> None:
        return None

    @query_endpoint(provides=[inventory_tags["expenses"]()])
    def get_expenses_by_category(self) -> None:
        return None


def create_inventory_api(
    base_url: str | None = None,
    *,
    default_policy: QueryPolicy | None = None,
    gc_interval: str | float = "5s",
) -> InventoryApi:
    """Wire an InventoryApi to an HTTP transport.

    Without ``base_url`` the address comes from INVENTORY_API_URL or
    API_BASE_URL, falling back to http://127.0.0.1:8000.
    """
    transport = (
        HttpTransport(base_url, INVENTORY_ROUTES)
        if base_url
        else HttpTransport.from_env(INVENTORY_ROUTES)
    )
    client = QueryClient(
        transport,
        default_policy=default_policy,
        gc_interval=gc_interval,
    )
    return InventoryApi(client)
