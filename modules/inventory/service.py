"""
Inventory Module - Service
============================
FIFO allocation, read-time stock pricing, reservations, stock receipt,
and the cached stock summary.

Every status change is a conditional UPDATE (... WHERE status = <expected>)
whose row count is checked, so two writers can never both move one unit.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from common.audit import audit_sink
from common.cache import cache_service, cache_key
from common.exceptions import InvalidInputError, NotFoundError, NotAvailableError
from common.helpers import (
    now_utc, as_utc, money, to_decimal, generate_tag_id, generate_barcode, generate_unique,
)
from common.transaction import unit_of_work
from config import settings
from modules.catalog.models import Product
from modules.inventory.models import StockItem, StockStatus
from modules.pricing.calculator import calculate_item_price, calculate_purchase_cost
from modules.pricing.service import rate_service

logger = logging.getLogger("jewelry.inventory")


class PriceSource:
    ITEM_OVERRIDE = "ITEM_OVERRIDE"
    PRODUCT_OVERRIDE = "PRODUCT_OVERRIDE"
    CALCULATED = "CALCULATED"


class FifoSelection(NamedTuple):
    items: List[StockItem]
    requested: int
    shortfall: int

    @property
    def can_fulfill(self) -> bool:
        return self.shortfall == 0


class InventoryService:

    def __init__(self, cache=None, audit=None, rates=None):
        self.cache = cache or cache_service
        self.audit = audit or audit_sink
        self.rates = rates or rate_service

    # ==========================================
    # Lookups
    # ==========================================

    def get_product(self, db: Session, product_id: int) -> Product:
        product = db.query(Product).filter(
            Product.id == product_id,
            Product.deleted_at == None,
        ).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def get_item(self, db: Session, item_id: int) -> StockItem:
        item = db.query(StockItem).filter(
            StockItem.id == item_id,
            StockItem.deleted_at == None,
        ).first()
        if not item:
            raise NotFoundError(f"Stock item {item_id} not found")
        return item

    def get_item_by_tag(self, db: Session, tag_id: str) -> StockItem:
        item = db.query(StockItem).filter(
            StockItem.tag_id == tag_id,
            StockItem.deleted_at == None,
        ).first()
        if not item:
            raise NotFoundError(f"Stock item with tag {tag_id} not found")
        return item

    # ==========================================
    # FIFO Selection
    # ==========================================

    def select_for_sale(self, db: Session, product_id: int, quantity: int) -> FifoSelection:
        """
        Oldest available units first (purchase_date, then id).
        Returns fewer than requested with a shortfall instead of failing.
        Nothing is locked; the sale re-checks status when it writes.
        """
        if quantity is None or quantity < 1:
            raise InvalidInputError("Quantity must be at least 1")
        self.get_product(db, product_id)

        items = db.query(StockItem).filter(
            StockItem.product_id == product_id,
            StockItem.status == StockStatus.AVAILABLE.value,
            StockItem.deleted_at == None,
        ).order_by(
            StockItem.purchase_date.asc(),
            StockItem.id.asc(),
        ).limit(quantity).all()

        return FifoSelection(items=items, requested=quantity, shortfall=quantity - len(items))

    def fifo_quote(self, db: Session, product_id: int, quantity: int) -> dict:
        """FIFO selection with live selling prices and margin totals."""
        selection = self.select_for_sale(db, product_id, quantity)
        rows = []
        total_selling = Decimal("0")
        total_cost = Decimal("0")
        for item in selection.items:
            priced = self.price_of(db, item)
            total_selling += priced["selling_price"]
            total_cost += Decimal(item.purchase_cost)
            rows.append({
                **item.to_dict(),
                "selling_price": priced["selling_price"],
                "price_source": priced["price_source"],
            })
        return {
            "product_id": product_id,
            "requested_quantity": selection.requested,
            "available_quantity": len(selection.items),
            "shortfall": selection.shortfall,
            "can_fulfill": selection.can_fulfill,
            "items": rows,
            "summary": {
                "total_selling_price": money(total_selling),
                "total_purchase_cost": money(total_cost),
                "potential_profit": money(total_selling - total_cost),
            },
        }

    # ==========================================
    # Read-time Pricing
    # ==========================================

    def price_of(self, db: Session, item: StockItem, product: Optional[Product] = None) -> dict:
        """
        Selling price of one unit, recomputed on every call:
        unit override > product override > current rate through the calculator.
        Raises NoActiveRateError when a calculation is needed and no rate is current.
        """
        product = product or item.product
        if item.price_override is not None:
            return {
                "selling_price": money(item.price_override),
                "price_source": PriceSource.ITEM_OVERRIDE,
                "reason": item.price_override_reason,
                "breakdown": None,
                "rate": None,
            }
        if product.has_override:
            return {
                "selling_price": money(product.price_override),
                "price_source": PriceSource.PRODUCT_OVERRIDE,
                "reason": product.price_override_reason,
                "breakdown": None,
                "rate": None,
            }

        rate = self.rates.get_current_rate(db, product.metal_type, product.purity)
        breakdown = calculate_item_price(
            net_weight=product.net_weight,
            wastage_percent=product.wastage_percent,
            metal_rate_per_gram=rate.rate_per_gram,
            making_charges=product.making_charges,
            stone_value=product.stone_value or 0,
        )
        return {
            "selling_price": breakdown["total_price"],
            "price_source": PriceSource.CALCULATED,
            "reason": None,
            "breakdown": breakdown,
            "rate": rate,
        }

    def set_item_price_override(
        self, db: Session, item_id: int, amount, reason: Optional[str], actor: str = "system",
    ) -> StockItem:
        """Set (amount given) or clear (amount None) the price override of one unit."""
        item = self.get_item(db, item_id)
        if item.status == StockStatus.SOLD.value:
            raise NotAvailableError(item.tag_id, f"Stock item {item.tag_id} is already sold")
        try:
            value = to_decimal(amount)
        except ValueError as e:
            raise InvalidInputError(str(e))
        if value is not None and (not value.is_finite() or value < 0):
            raise InvalidInputError("price_override cannot be negative")
        if value is not None and not (reason or "").strip():
            raise InvalidInputError("A price override requires a reason")
        before = {"price_override": item.price_override, "reason": item.price_override_reason}

        with unit_of_work(db, label="unit price override"):
            item.price_override = money(value) if value is not None else None
            item.price_override_reason = reason.strip() if value is not None else None
            db.flush()

        self.audit.record(
            "PRICE_OVERRIDE", "INVENTORY", item.id,
            before=before,
            after={"price_override": item.price_override, "reason": item.price_override_reason},
            actor=actor,
        )
        logger.info(f"Stock item {item.tag_id} override set to {item.price_override} by {actor}")
        return item

    # ==========================================
    # Conditional Transitions
    # ==========================================

    def transition(self, db: Session, item_id: int, from_statuses: Iterable[str], values: dict, extra_filters=()) -> bool:
        """UPDATE one unit only if its status is still one of from_statuses. True when a row moved."""
        q = db.query(StockItem).filter(
            StockItem.id == item_id,
            StockItem.status.in_(list(from_statuses)),
            StockItem.deleted_at == None,
            *extra_filters,
        )
        count = q.update(values, synchronize_session=False)
        return count == 1

    def _load_for_transition(self, db: Session, item_ids: List[int], expected: str) -> List[StockItem]:
        ids = list(dict.fromkeys(item_ids or []))
        if not ids:
            raise InvalidInputError("At least one stock item id is required")
        items = db.query(StockItem).filter(
            StockItem.id.in_(ids),
            StockItem.deleted_at == None,
        ).all()
        found = {i.id: i for i in items}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError(f"Stock items not found: {missing}")
        for item_id in ids:
            item = found[item_id]
            if item.status != expected:
                raise NotAvailableError(item.tag_id, f"Stock item {item.tag_id} is {item.status}, expected {expected}")
        return [found[i] for i in ids]

    def reserve_stock(self, db: Session, item_ids: List[int], actor: str = "system") -> List[StockItem]:
        """AVAILABLE -> RESERVED for every id, or for none."""
        with unit_of_work(db, label="stock reservation"):
            items = self._load_for_transition(db, item_ids, StockStatus.AVAILABLE.value)
            for item in items:
                moved = self.transition(
                    db, item.id, [StockStatus.AVAILABLE.value],
                    {StockItem.status: StockStatus.RESERVED.value},
                )
                if not moved:
                    raise NotAvailableError(item.tag_id)
            db.flush()
            for item in items:
                db.expire(item)

        self.invalidate_summary()
        ids = [i.id for i in items]
        self.audit.record("RESERVE", "INVENTORY", ids, after={"status": StockStatus.RESERVED.value}, actor=actor)
        logger.info(f"Reserved {len(ids)} stock items {ids} by {actor}")
        return items

    def release_stock(self, db: Session, item_ids: List[int], actor: str = "system") -> List[StockItem]:
        """RESERVED -> AVAILABLE for every id, or for none. Units held by an order stay put."""
        with unit_of_work(db, label="stock release"):
            items = self._load_for_transition(db, item_ids, StockStatus.RESERVED.value)
            for item in items:
                if item.sales_order_line_id is not None:
                    raise NotAvailableError(
                        item.tag_id,
                        f"Stock item {item.tag_id} is held by a sales order; cancel the order instead",
                    )
                moved = self.transition(
                    db, item.id, [StockStatus.RESERVED.value],
                    {StockItem.status: StockStatus.AVAILABLE.value},
                    extra_filters=(StockItem.sales_order_line_id == None,),
                )
                if not moved:
                    raise NotAvailableError(item.tag_id)
            db.flush()
            for item in items:
                db.expire(item)

        self.invalidate_summary()
        ids = [i.id for i in items]
        self.audit.record("RELEASE", "INVENTORY", ids, after={"status": StockStatus.AVAILABLE.value}, actor=actor)
        logger.info(f"Released {len(ids)} stock items {ids} by {actor}")
        return items

    # ==========================================
    # Stock Receipt
    # ==========================================

    def receive_stock(
        self,
        db: Session,
        product_id: int,
        purchase_costs: List,
        purchase_date=None,
        purchase_reference: Optional[str] = None,
        huids: Optional[List[Optional[str]]] = None,
        record_expense: bool = False,
        payment_mode: str = "CASH",
        actor: str = "system",
    ) -> List[StockItem]:
        """
        Create one AVAILABLE unit per purchase cost, with generated tag and barcode.
        A None cost is priced at net weight against the current rate.
        """
        from modules.ledger.service import ledger_service

        if not purchase_costs:
            raise InvalidInputError("At least one unit must be received")
        if huids is not None and len(huids) != len(purchase_costs):
            raise InvalidInputError("huids must match the number of units")
        costs = []
        for cost in purchase_costs:
            if cost is None:
                costs.append(None)
                continue
            try:
                value = to_decimal(cost)
            except ValueError as e:
                raise InvalidInputError(str(e))
            if value is None or value < 0:
                raise InvalidInputError("Purchase cost cannot be negative")
            costs.append(money(value))

        with unit_of_work(db, label="stock receipt"):
            product = self.get_product(db, product_id)
            if not product.is_active:
                raise InvalidInputError(f"Product {product.sku} is inactive")
            if None in costs:
                rate = self.rates.get_current_rate(db, product.metal_type, product.purity)
                rate_cost = calculate_purchase_cost(
                    product.net_weight, rate.rate_per_gram,
                    product.making_charges, product.stone_value or 0,
                )
                costs = [rate_cost if c is None else c for c in costs]
            received_at = as_utc(purchase_date) or now_utc()

            tags, barcodes = set(), set()
            items = []
            for index, cost in enumerate(costs):
                item = StockItem(
                    product_id=product.id,
                    tag_id=generate_unique(
                        db, StockItem.tag_id,
                        lambda: generate_tag_id(product.metal_type, product.purity), taken=tags,
                    ),
                    barcode=generate_unique(
                        db, StockItem.barcode,
                        lambda: generate_barcode("STK", product.id), taken=barcodes,
                    ),
                    huid=huids[index] if huids else None,
                    purchase_cost=cost,
                    purchase_date=received_at,
                    purchase_reference=purchase_reference,
                    status=StockStatus.AVAILABLE.value,
                )
                db.add(item)
                items.append(item)
            db.flush()

            if record_expense:
                ledger_service.record_expense(
                    db, sum(costs, Decimal("0")), payment_mode,
                    description=f"Stock receipt {product.sku} x{len(items)}",
                    reference_number=purchase_reference,
                    actor=actor,
                )

        self.invalidate_summary()
        self.audit.record(
            "RECEIVE", "INVENTORY", product_id,
            after={"tag_ids": [i.tag_id for i in items], "purchase_reference": purchase_reference},
            actor=actor,
        )
        logger.info(f"Received {len(items)} units of product {product_id} ({purchase_reference}) by {actor}")
        return items

    # ==========================================
    # Summary & Availability
    # ==========================================

    def invalidate_summary(self):
        self.cache.invalidate_prefix(cache_key(settings.SHOP_CODE, "stock", ""))

    def get_stock_summary(self, db: Session) -> dict:
        """Unit counts and purchase value by status and metal type. Cached."""
        key = cache_key(settings.SHOP_CODE, "stock", "summary")
        return self.cache.get_or_set(
            key, lambda: self._load_summary(db), ttl=settings.STOCK_SUMMARY_CACHE_SECONDS,
        )

    def _load_summary(self, db: Session) -> dict:
        rows = db.query(
            Product.metal_type,
            StockItem.status,
            func.count(StockItem.id),
            func.coalesce(func.sum(StockItem.purchase_cost), 0),
        ).join(Product, Product.id == StockItem.product_id).filter(
            StockItem.deleted_at == None,
        ).group_by(Product.metal_type, StockItem.status).all()

        by_status = {s.value: {"count": 0, "purchase_value": Decimal("0.00")} for s in StockStatus}
        by_metal = {}
        total_count = 0
        for metal, status, count, value in rows:
            value = money(value)
            by_status.setdefault(status, {"count": 0, "purchase_value": Decimal("0.00")})
            by_status[status]["count"] += count
            by_status[status]["purchase_value"] += value
            metal_row = by_metal.setdefault(metal, {"count": 0, "available": 0, "purchase_value": Decimal("0.00")})
            metal_row["count"] += count
            metal_row["purchase_value"] += value
            if status == StockStatus.AVAILABLE.value:
                metal_row["available"] += count
            total_count += count

        return {
            "total_items": total_count,
            "by_status": by_status,
            "by_metal_type": by_metal,
            "generated_at": now_utc(),
        }

    def get_availability(self, db: Session, product_id: int) -> dict:
        self.get_product(db, product_id)
        rows = db.query(StockItem.status, func.count(StockItem.id)).filter(
            StockItem.product_id == product_id,
            StockItem.deleted_at == None,
        ).group_by(StockItem.status).all()
        counts = {s.value: 0 for s in StockStatus}
        counts.update({status: count for status, count in rows})
        return {"product_id": product_id, **counts, "total": sum(counts.values())}


# Singleton
inventory_service = InventoryService()
