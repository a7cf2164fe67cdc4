# catalog_api/queries.py
"""Read-side query composition shared by the search and analytics routers.

Statement builders return SQLAlchemy ``Select`` objects that the routers
count, order and paginate; the aggregation helpers are plain functions
over rows that are already loaded, so they can be tested without a
database.
"""
import calendar
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Select, and_, case, func, or_, select

from .models import Category, Customer, Order, OrderItem, Product

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
# keeps OFFSET inside a 64-bit integer
MAX_PAGE = 1_000_000


# 📄 Pagination
@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def meta(self, total_count: int) -> Dict[str, int]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total_count": total_count,
            "total_pages": math.ceil(total_count / self.page_size),
        }


def clamp_pagination(page: Optional[int], page_size: Optional[int]) -> Pagination:
    """page < 1 becomes 1, a non-positive size the default, and both are capped."""
    page = min(page, MAX_PAGE) if page and page > 0 else 1
    if not page_size or page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    return Pagination(page=page, page_size=min(page_size, MAX_PAGE_SIZE))


def paginate(stmt: Select, pagination: Pagination) -> Select:
    return stmt.offset(pagination.offset).limit(pagination.page_size)


def count_of(stmt: Select) -> Select:
    """COUNT(*) over a filtered statement, before any ordering or paging."""
    return select(func.count()).select_from(stmt.order_by(None).subquery())


def money(value: Any) -> float:
    """Decimal/None from an aggregate as a float rounded to cents."""
    if value is None:
        return 0.0
    return round(float(value), 2)


def average(total: Any, count: int) -> float:
    return money(Decimal(str(total or 0)) / count) if count else 0.0


# 🔎 Advanced product search
SORT_COLUMNS = {
    "name": Product.name,
    "price": Product.price,
    "stock": Product.stock,
    "rating": Product.rating,
    "created": Product.created_at,
    "brand": Product.brand,
}


@dataclass
class ProductSearch:
    name: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    category_id: Optional[int] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_stock: Optional[int] = None
    min_rating: Optional[float] = None
    in_stock: Optional[bool] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    sort_by: str = "name"
    sort_order: str = "asc"

    def effective_sort(self) -> Tuple[str, str]:
        key = (self.sort_by or "").strip().lower()
        if key not in SORT_COLUMNS:
            return "name", "asc"
        order = "desc" if (self.sort_order or "").strip().lower() == "desc" else "asc"
        return key, order

    def echo(self) -> Dict[str, Any]:
        sort_by, sort_order = self.effective_sort()
        return {
            "name": self.name,
            "description": self.description,
            "brand": self.brand,
            "category_id": self.category_id,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "min_stock": self.min_stock,
            "min_rating": self.min_rating,
            "in_stock": self.in_stock,
            "created_after": self.created_after,
            "created_before": self.created_before,
            "sort_by": sort_by,
            "sort_order": sort_order,
        }


def build_product_search(params: ProductSearch) -> Select:
    """Active products matching every supplied filter, unordered."""
    stmt = select(Product).where(Product.is_active.is_(True))

    # LIKE wildcards typed by the user match literally
    if params.name:
        stmt = stmt.where(Product.name.icontains(params.name, autoescape=True))
    if params.description:
        stmt = stmt.where(Product.description.icontains(params.description, autoescape=True))
    if params.brand:
        stmt = stmt.where(Product.brand.icontains(params.brand, autoescape=True))
    if params.category_id is not None:
        stmt = stmt.where(Product.category_id == params.category_id)
    if params.min_price is not None:
        stmt = stmt.where(Product.price >= params.min_price)
    if params.max_price is not None:
        stmt = stmt.where(Product.price <= params.max_price)
    if params.min_stock is not None:
        stmt = stmt.where(Product.stock >= params.min_stock)
    if params.min_rating is not None:
        stmt = stmt.where(Product.rating.isnot(None), Product.rating >= params.min_rating)
    if params.in_stock is not None:
        stmt = stmt.where(Product.stock > 0 if params.in_stock else Product.stock == 0)
    if params.created_after is not None:
        stmt = stmt.where(Product.created_at >= params.created_after)
    if params.created_before is not None:
        stmt = stmt.where(Product.created_at <= params.created_before)
    return stmt


def order_product_search(stmt: Select, sort_by: str, sort_order: str) -> Select:
    column = SORT_COLUMNS[sort_by]
    primary = column.desc() if sort_order == "desc" else column.asc()
    # id last so every page boundary is stable
    return stmt.order_by(primary.nulls_last(), Product.id.asc())


# 🧲 Similar products
SIMILAR_PRICE_LOW = Decimal("0.8")
SIMILAR_PRICE_HIGH = Decimal("1.2")


def clamp_limit(limit: Optional[int], default: int = 5, maximum: int = 50) -> int:
    if not limit or limit < 1:
        return default
    return min(limit, maximum)


def _price_window(price: Any) -> Tuple[Decimal, Decimal]:
    price = Decimal(str(price))
    return price * SIMILAR_PRICE_LOW, price * SIMILAR_PRICE_HIGH


def build_similar_products(source: Product) -> Select:
    """Active products sharing the source's category, brand or price band, best first."""
    low, high = _price_window(source.price)
    same_category = Product.category_id == source.category_id
    in_price_band = and_(Product.price >= low, Product.price <= high)

    eligible = [same_category, in_price_band]
    ranking = [case((same_category, 0), else_=1)]
    # a missing brand matches nothing, not other missing brands
    if source.brand:
        same_brand = and_(Product.brand.isnot(None), Product.brand == source.brand)
        eligible.append(same_brand)
        ranking.append(case((same_brand, 0), else_=1))
    ranking += [func.abs(Product.price - Decimal(str(source.price))), Product.id]

    return (
        select(Product)
        .where(Product.is_active.is_(True), Product.id != source.id, or_(*eligible))
        .order_by(*ranking)
    )


def similarity_reasons(source: Product, candidate: Product) -> List[str]:
    reasons = []
    if candidate.category_id == source.category_id:
        reasons.append("same category")
    if source.brand and candidate.brand == source.brand:
        reasons.append("same brand")
    low, high = _price_window(source.price)
    if low <= Decimal(str(candidate.price)) <= high:
        reasons.append("similar price")
    return reasons


# 👥 Customer behaviour
def customer_segment(total_spent: Any) -> str:
    total_spent = float(total_spent or 0)
    if total_spent > 1000:
        return "Premium"
    if total_spent > 500:
        return "Regular"
    return "Basic"


def days_since(moment: datetime, now: datetime) -> int:
    return (now - moment).days


def build_customer_behavior(
    *,
    city: Optional[str] = None,
    registered_after: Optional[datetime] = None,
    min_spent: Optional[float] = None,
    min_orders: Optional[int] = None,
) -> Select:
    """Active customers with their order aggregates, filtered on stored and derived values.

    Rows are ``(Customer, total_orders, total_spent, last_order_date)``.
    """
    totals = (
        select(
            Order.customer_id.label("customer_id"),
            func.count(Order.id).label("total_orders"),
            func.sum(Order.total_amount).label("total_spent"),
            func.max(Order.order_date).label("last_order_date"),
        )
        .group_by(Order.customer_id)
        .subquery("order_totals")
    )
    total_orders = func.coalesce(totals.c.total_orders, 0)
    total_spent = func.coalesce(totals.c.total_spent, 0)

    stmt = (
        select(
            Customer,
            total_orders.label("total_orders"),
            total_spent.label("total_spent"),
            totals.c.last_order_date,
        )
        .outerjoin(totals, totals.c.customer_id == Customer.id)
        .where(Customer.is_active.is_(True))
    )
    if city:
        stmt = stmt.where(Customer.city.icontains(city, autoescape=True))
    if registered_after is not None:
        stmt = stmt.where(Customer.created_at >= registered_after)

    # these compare against the aggregates, so they shape the count too
    if min_spent is not None:
        stmt = stmt.where(total_spent >= min_spent)
    if min_orders is not None:
        stmt = stmt.where(total_orders >= min_orders)
    return stmt


def order_customer_behavior(stmt: Select) -> Select:
    return stmt.order_by(stmt.selected_columns.total_spent.desc(), Customer.id.asc())


def customer_category_quantities(customer_ids: Sequence[int]) -> Select:
    """Rows of ``(customer_id, category_name, quantity)``."""
    return (
        select(Order.customer_id, Category.name, func.sum(OrderItem.quantity).label("quantity"))
        .join(OrderItem, OrderItem.order_id == Order.id)
        .join(Product, Product.id == OrderItem.product_id)
        .join(Category, Category.id == Product.category_id)
        .where(Order.customer_id.in_(customer_ids))
        .group_by(Order.customer_id, Category.id, Category.name)
    )


def customer_product_quantities(customer_ids: Sequence[int]) -> Select:
    """Rows of ``(customer_id, product_id, product_name, quantity)``."""
    return (
        select(Order.customer_id, Product.id, Product.name, func.sum(OrderItem.quantity).label("quantity"))
        .join(OrderItem, OrderItem.order_id == Order.id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(Order.customer_id.in_(customer_ids))
        .group_by(Order.customer_id, Product.id, Product.name)
    )


def top_by_quantity(entries: Iterable[Dict[str, Any]], n: int = 3) -> List[Dict[str, Any]]:
    """Highest ``quantity`` first; equal quantities keep their input order."""
    return sorted(entries, key=lambda e: -e["quantity"])[:n]


# 📅 Purchase patterns
@dataclass
class OrderFact:
    order_id: int
    customer_id: int
    order_date: datetime
    total_amount: Decimal


PatternKey = Tuple[int, int, int, int]


def pattern_key(moment: datetime) -> PatternKey:
    # weekday(): Monday=0 .. Sunday=6
    return moment.year, moment.month, moment.weekday(), moment.hour


def group_purchase_patterns(
    orders: Iterable[OrderFact],
    category_quantities: Dict[int, Dict[str, int]],
) -> List[Dict[str, Any]]:
    """Orders bucketed by (year, month, weekday, hour), in key order.

    ``category_quantities`` maps an order id to ``{category_name: quantity}``.
    """
    buckets: Dict[PatternKey, List[OrderFact]] = defaultdict(list)
    for fact in orders:
        buckets[pattern_key(fact.order_date)].append(fact)

    patterns = []
    for key in sorted(buckets):
        facts = buckets[key]
        year, month, weekday, hour = key
        revenue = sum((Decimal(str(f.total_amount)) for f in facts), Decimal("0"))

        categories: Dict[str, int] = defaultdict(int)
        for f in facts:
            for name, qty in category_quantities.get(f.order_id, {}).items():
                categories[name] += qty

        patterns.append({
            "period": {
                "year": year,
                "month": month,
                "weekday": weekday,
                "day_name": calendar.day_name[weekday],
                "hour": hour,
            },
            "order_count": len(facts),
            "total_revenue": money(revenue),
            "average_order_value": average(revenue, len(facts)),
            "unique_customers": len({f.customer_id for f in facts}),
            "top_categories": top_by_quantity(
                [{"category": name, "quantity": qty} for name, qty in sorted(categories.items())]
            ),
        })
    return patterns


def roll_up(patterns: Sequence[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    """Collapse detailed patterns onto one period field, sorted by that field."""
    groups: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    for p in patterns:
        groups[p["period"][field]].append(p)

    rows = []
    for key in sorted(groups):
        items = groups[key]
        total_orders = sum(p["order_count"] for p in items)
        total_revenue = sum(p["total_revenue"] for p in items)
        row: Dict[str, Any] = {field: key}
        if field == "month":
            row["month_name"] = calendar.month_name[key]
        elif field == "weekday":
            row["day_name"] = calendar.day_name[key]
        row.update({
            "average_orders": round(total_orders / len(items), 2),
            "average_revenue": round(total_revenue / len(items), 2),
            "total_orders": total_orders,
            "total_revenue": round(total_revenue, 2),
        })
        rows.append(row)
    return rows


def best_by_revenue(rows: Sequence[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # max() keeps the first of equal maxima, i.e. the earliest key
    return max(rows, key=lambda r: r["total_revenue"], default=None)


# 💲 Price buckets
PRICE_RANGES: List[Tuple[str, Optional[Decimal]]] = [
    ("0-50", Decimal("50")),
    ("50-100", Decimal("100")),
    ("100-200", Decimal("200")),
    ("200-500", Decimal("500")),
    ("500-1000", Decimal("1000")),
    ("1000+", None),
]


def price_range_label(price: Any) -> str:
    price = Decimal(str(price))
    for label, upper in PRICE_RANGES:
        if upper is None or price < upper:
            return label
    return PRICE_RANGES[-1][0]
