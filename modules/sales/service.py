"""
Sales Module - Service
=======================
Sale creation, completion, cancellation, and payments.

A sale is one unit of work: stock resolution, price freezing, order and
line inserts, conditional stock transitions, the income transaction, and
the initial payment all commit together or not at all.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from common.audit import audit_sink
from common.exceptions import (
    InvalidInputError, InvalidDiscountError, InvalidStateError, NotAvailableError, NotFoundError,
)
from common.helpers import now_utc, money, to_decimal, generate_invoice_number, generate_unique
from common.transaction import unit_of_work, lock_for_update
from config import settings
from modules.customer.models import Customer
from modules.inventory.models import StockItem, StockStatus
from modules.inventory.service import inventory_service
from modules.ledger.service import ledger_service
from modules.sales.models import (
    SalesOrder, SalesOrderLine, SalesPayment,
    OrderStatus, PaymentStatus, PaymentMethod, OrderType,
)

logger = logging.getLogger("jewelry.sales")


def _amount(name: str, value) -> Decimal:
    try:
        d = to_decimal(value, Decimal("0"))
    except ValueError:
        raise InvalidInputError(f"{name} must be a number")
    if not d.is_finite() or d < 0:
        raise InvalidInputError(f"{name} cannot be negative")
    return money(d)


def _choice(enum_cls, value, name: str) -> str:
    try:
        return enum_cls(str(getattr(value, "value", value)).upper()).value
    except ValueError:
        raise InvalidInputError(f"{name} must be one of {', '.join(e.value for e in enum_cls)}")


def payment_status_for(paid: Decimal, final: Decimal) -> str:
    if paid >= final:
        return PaymentStatus.PAID.value
    if paid > 0:
        return PaymentStatus.PARTIAL.value
    return PaymentStatus.PENDING.value


class SalesService:

    def __init__(self, inventory=None, ledger=None, audit=None):
        self.inventory = inventory or inventory_service
        self.ledger = ledger or ledger_service
        self.audit = audit or audit_sink

    # ==========================================
    # Queries
    # ==========================================

    def get_order(self, db: Session, order_id: int) -> SalesOrder:
        order = db.query(SalesOrder).options(
            joinedload(SalesOrder.lines).joinedload(SalesOrderLine.stock_item),
        ).filter(SalesOrder.id == order_id).first()
        if not order:
            raise NotFoundError(f"Sales order {order_id} not found")
        return order

    def list_orders(self, db: Session, page: int = 1, per_page: int = 50, status=None, customer_id=None):
        q = db.query(SalesOrder)
        if status:
            q = q.filter(SalesOrder.status == _choice(OrderStatus, status, "status"))
        if customer_id:
            q = q.filter(SalesOrder.customer_id == customer_id)
        page = max(page, 1)
        per_page = min(max(per_page, 1), 200)
        total = q.count()
        orders = q.order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc()) \
            .offset((page - 1) * per_page).limit(per_page).all()
        return orders, total

    # ==========================================
    # Create Sale
    # ==========================================

    def _validate_lines(self, lines: List[dict]) -> List[dict]:
        if not lines:
            raise InvalidInputError("At least one line is required")
        seen = set()
        cleaned = []
        for index, line in enumerate(lines, start=1):
            stock_item_id = line.get("stock_item_id")
            tag_id = (line.get("tag_id") or "").strip() or None
            if (stock_item_id is None) == (tag_id is None):
                raise InvalidInputError(f"Line {index}: give exactly one of stock_item_id or tag_id")
            quantity = line.get("quantity", 1)
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise InvalidInputError(f"Line {index}: quantity must be a positive integer")
            ref = ("id", stock_item_id) if stock_item_id is not None else ("tag", tag_id)
            if ref in seen:
                raise InvalidInputError(f"Line {index}: stock item referenced twice")
            seen.add(ref)
            cleaned.append({"stock_item_id": stock_item_id, "tag_id": tag_id, "quantity": quantity})
        return cleaned

    def _resolve(self, db: Session, line: dict) -> StockItem:
        if line["stock_item_id"] is not None:
            item = self.inventory.get_item(db, line["stock_item_id"])
        else:
            item = self.inventory.get_item_by_tag(db, line["tag_id"])
        if item.status != StockStatus.AVAILABLE.value:
            raise NotAvailableError(item.tag_id, f"Stock item {item.tag_id} is not available (status: {item.status})")
        return item

    def create_sale(
        self,
        db: Session,
        customer_id: int,
        lines: List[dict],
        payment_method: str,
        discount_amount=0,
        paid_amount=0,
        as_pending: bool = False,
        order_type: str = OrderType.RETAIL.value,
        notes: Optional[str] = None,
        actor: str = "system",
        timeout_seconds: Optional[float] = None,
    ) -> SalesOrder:
        """
        Create a sales order for specific stock units.

        Completed sales mark units SOLD and post one income transaction;
        pending sales (as_pending) mark them RESERVED and post nothing yet.
        """
        # Pre-validation: no writes
        cleaned = self._validate_lines(lines)
        discount = _amount("discount_amount", discount_amount)
        paid = _amount("paid_amount", paid_amount)
        method = _choice(PaymentMethod, payment_method, "payment_method")
        kind = _choice(OrderType, order_type, "order_type")
        timeout = settings.SALE_TRANSACTION_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds

        with unit_of_work(db, timeout_seconds=timeout, label="sale") as uow:
            customer = db.query(Customer).filter(
                Customer.id == customer_id,
                Customer.deleted_at == None,
            ).first()
            if not customer:
                raise NotFoundError(f"Customer {customer_id} not found")

            # Resolve and price each unit; prices are frozen into the lines
            priced = []
            order_total = Decimal("0")
            for line in cleaned:
                item = self._resolve(db, line)
                if any(p["item"].id == item.id for p in priced):
                    raise InvalidInputError(f"Stock item {item.tag_id} referenced twice")
                price = self.inventory.price_of(db, item)
                line_total = money(price["selling_price"] * line["quantity"])
                order_total += line_total
                priced.append({"item": item, "quantity": line["quantity"], "price": price, "line_total": line_total})
                uow.checkpoint("pricing")

            order_total = money(order_total)
            final_amount = money(order_total - discount)
            if final_amount < 0:
                raise InvalidDiscountError("Discount cannot exceed order total")

            now = now_utc()
            status = OrderStatus.PENDING.value if as_pending else OrderStatus.COMPLETED.value
            stock_status = StockStatus.RESERVED.value if as_pending else StockStatus.SOLD.value

            order = SalesOrder(
                invoice_number=generate_unique(db, SalesOrder.invoice_number, generate_invoice_number),
                customer_id=customer.id,
                order_date=now,
                order_type=kind,
                order_total=order_total,
                discount_amount=discount,
                final_amount=final_amount,
                paid_amount=paid,
                payment_method=method,
                payment_status=payment_status_for(paid, final_amount),
                status=status,
                notes=notes,
                completed_at=None if as_pending else now,
                created_by=actor,
            )
            for p in priced:
                breakdown = p["price"]["breakdown"]
                rate = p["price"]["rate"]
                order.lines.append(SalesOrderLine(
                    stock_item_id=p["item"].id,
                    quantity=p["quantity"],
                    unit_price=p["price"]["selling_price"],
                    line_total=p["line_total"],
                    price_source=p["price"]["price_source"],
                    applied_rate_id=rate.id if rate is not None else None,
                    applied_rate_per_gram=rate.rate_per_gram if rate is not None else None,
                    applied_effective_weight=breakdown["effective_weight"] if breakdown else None,
                ))
            db.add(order)
            db.flush()
            uow.checkpoint("order insert")

            # Conditional transitions: a unit taken since resolution fails the whole sale
            for line in order.lines:
                item = next(p["item"] for p in priced if p["item"].id == line.stock_item_id)
                moved = self.inventory.transition(
                    db, item.id, [StockStatus.AVAILABLE.value],
                    {
                        StockItem.status: stock_status,
                        StockItem.sale_date: None if as_pending else now,
                        StockItem.sales_order_line_id: line.id,
                    },
                )
                if not moved:
                    raise NotAvailableError(item.tag_id)
                db.expire(item)
            uow.checkpoint("stock update")

            if not as_pending:
                self.ledger.record_income(
                    db, final_amount, method,
                    description=f"Sales Order {order.invoice_number}",
                    reference_number=order.invoice_number,
                    customer_id=customer.id,
                    sales_order_id=order.id,
                    actor=actor,
                )
            if paid > 0:
                db.add(SalesPayment(
                    sales_order_id=order.id,
                    amount=paid,
                    payment_date=now,
                    payment_method=method,
                    notes="Initial payment",
                    created_by=actor,
                ))
            db.flush()

        self.inventory.invalidate_summary()
        self.audit.record("CREATE", "SALES_ORDERS", order.id, after=order.to_dict(with_lines=False), actor=actor)
        logger.info(
            f"Sale {order.invoice_number} [{order.status}] {len(order.lines)} units, "
            f"final {order.final_amount} paid {order.paid_amount} by {actor}"
        )
        return order

    # ==========================================
    # Complete / Cancel
    # ==========================================

    def _lock_order(self, db: Session, order_id: int) -> SalesOrder:
        order = lock_for_update(db.query(SalesOrder).filter(SalesOrder.id == order_id)).first()
        if not order:
            raise NotFoundError(f"Sales order {order_id} not found")
        return order

    def complete_sale(self, db: Session, order_id: int, actor: str = "system") -> SalesOrder:
        """PENDING -> COMPLETED: reserved units become SOLD and income is posted."""
        with unit_of_work(db, label="sale completion"):
            order = self._lock_order(db, order_id)
            if order.status != OrderStatus.PENDING.value:
                raise InvalidStateError(f"Only pending orders can be completed (order is {order.status})")

            now = now_utc()
            for line in order.lines:
                moved = self.inventory.transition(
                    db, line.stock_item_id, [StockStatus.RESERVED.value],
                    {StockItem.status: StockStatus.SOLD.value, StockItem.sale_date: now},
                    extra_filters=(StockItem.sales_order_line_id == line.id,),
                )
                if not moved:
                    raise NotAvailableError(line.stock_item.tag_id, f"Stock item {line.stock_item.tag_id} is no longer reserved for this order")
                db.expire(line.stock_item)

            order.status = OrderStatus.COMPLETED.value
            order.completed_at = now
            self.ledger.record_income(
                db, order.final_amount, order.payment_method,
                description=f"Sales Order {order.invoice_number}",
                reference_number=order.invoice_number,
                customer_id=order.customer_id,
                sales_order_id=order.id,
                actor=actor,
            )
            db.flush()

        self.inventory.invalidate_summary()
        self.audit.record(
            "COMPLETE", "SALES_ORDERS", order.id,
            before={"status": OrderStatus.PENDING.value}, after={"status": order.status}, actor=actor,
        )
        logger.info(f"Sale {order.invoice_number} completed by {actor}")
        return order

    def cancel_sale(self, db: Session, order_id: int, reason: Optional[str] = None, actor: str = "system") -> SalesOrder:
        """
        Cancel a pending or completed order and return its units to AVAILABLE.
        Ledger transactions already posted are kept.
        """
        with unit_of_work(db, label="sale cancellation"):
            order = self._lock_order(db, order_id)
            if order.status not in (OrderStatus.PENDING.value, OrderStatus.COMPLETED.value):
                raise InvalidStateError(f"Order {order.invoice_number} is already {order.status}")
            previous = order.status

            for line in order.lines:
                moved = self.inventory.transition(
                    db, line.stock_item_id, [StockStatus.RESERVED.value, StockStatus.SOLD.value],
                    {
                        StockItem.status: StockStatus.AVAILABLE.value,
                        StockItem.sale_date: None,
                        StockItem.sales_order_line_id: None,
                    },
                    extra_filters=(StockItem.sales_order_line_id == line.id,),
                )
                if not moved:
                    raise NotAvailableError(line.stock_item.tag_id, f"Stock item {line.stock_item.tag_id} is not held by this order")
                db.expire(line.stock_item)

            order.status = OrderStatus.CANCELLED.value
            order.cancelled_at = now_utc()
            order.cancellation_reason = (reason or "").strip() or None
            db.flush()

        self.inventory.invalidate_summary()
        self.audit.record(
            "CANCEL", "SALES_ORDERS", order.id,
            before={"status": previous}, after={"status": order.status, "reason": order.cancellation_reason},
            actor=actor,
        )
        logger.info(f"Sale {order.invoice_number} cancelled ({previous}) by {actor}: {order.cancellation_reason}")
        return order

    # ==========================================
    # Payments
    # ==========================================

    def record_payment(
        self,
        db: Session,
        order_id: int,
        amount,
        payment_method: str,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        actor: str = "system",
    ) -> SalesPayment:
        """Add a payment against the balance. Income was posted at completion, so no ledger row here."""
        value = _amount("amount", amount)
        if value <= 0:
            raise InvalidInputError("Payment amount must be greater than zero")
        method = _choice(PaymentMethod, payment_method, "payment_method")

        with unit_of_work(db, label="sale payment"):
            order = self._lock_order(db, order_id)
            if order.status == OrderStatus.CANCELLED.value:
                raise InvalidStateError(f"Order {order.invoice_number} is cancelled")
            pending = money(order.final_amount - order.paid_amount)
            if pending <= 0:
                raise InvalidStateError(f"Order {order.invoice_number} is already fully paid")
            if value > pending:
                raise InvalidInputError(f"Payment {value} exceeds pending amount {pending}")

            payment = SalesPayment(
                sales_order_id=order.id,
                amount=value,
                payment_method=method,
                reference_number=reference_number,
                notes=notes,
                created_by=actor,
            )
            db.add(payment)
            order.paid_amount = money(order.paid_amount + value)
            order.payment_status = payment_status_for(order.paid_amount, order.final_amount)
            db.flush()

        self.audit.record(
            "PAYMENT", "SALES_ORDERS", order.id,
            after={"amount": value, "paid_amount": order.paid_amount, "payment_status": order.payment_status},
            actor=actor,
        )
        logger.info(f"Payment {value} on {order.invoice_number} ({order.payment_status}) by {actor}")
        return payment

    def list_payments(self, db: Session, order_id: int) -> List[SalesPayment]:
        if not db.query(SalesOrder.id).filter(SalesOrder.id == order_id).first():
            raise NotFoundError(f"Sales order {order_id} not found")
        return db.query(SalesPayment).filter(
            SalesPayment.sales_order_id == order_id,
        ).order_by(SalesPayment.id.asc()).all()


# Singleton
sales_service = SalesService()
