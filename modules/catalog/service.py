"""
Catalog Module - Service
=========================
Product creation, price overrides, and the live price breakdown.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from common.audit import audit_sink
from common.exceptions import InvalidInputError, NotFoundError
from common.helpers import money, to_decimal
from common.transaction import unit_of_work
from modules.catalog.models import Product
from modules.pricing.calculator import calculate_item_price
from modules.pricing.service import rate_service, normalize_metal, normalize_purity

logger = logging.getLogger("jewelry.catalog")


def _number(name, value, required=False) -> Optional[Decimal]:
    if value is None:
        if required:
            raise InvalidInputError(f"{name} is required")
        return None
    try:
        d = to_decimal(value)
    except ValueError:
        raise InvalidInputError(f"{name} must be a number")
    if not d.is_finite() or d < 0:
        raise InvalidInputError(f"{name} cannot be negative")
    return d


class CatalogService:

    def __init__(self, rates=None, audit=None):
        self.rates = rates or rate_service
        self.audit = audit or audit_sink

    def get_product(self, db: Session, product_id: int) -> Product:
        product = db.query(Product).filter(
            Product.id == product_id,
            Product.deleted_at == None,
        ).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def list_products(self, db: Session, metal_type=None, purity=None, collection_name=None) -> List[Product]:
        q = db.query(Product).filter(Product.deleted_at == None, Product.is_active == True)
        if metal_type:
            q = q.filter(Product.metal_type == normalize_metal(metal_type))
        if purity:
            q = q.filter(Product.purity == normalize_purity(purity))
        if collection_name:
            q = q.filter(Product.collection_name.ilike(f"%{collection_name}%"))
        return q.order_by(Product.id.asc()).all()

    def create_product(
        self,
        db: Session,
        name: str,
        sku: str,
        metal_type,
        purity: str,
        net_weight,
        wastage_percent=0,
        making_charges=0,
        gross_weight=None,
        stone_weight=None,
        stone_value=None,
        collection_name: Optional[str] = None,
        price_override=None,
        price_override_reason: Optional[str] = None,
        actor: str = "system",
    ) -> Product:
        if not (name or "").strip() or not (sku or "").strip():
            raise InvalidInputError("Product name and sku are required")
        net = _number("net_weight", net_weight, required=True)
        if net <= 0:
            raise InvalidInputError("net_weight must be greater than zero")
        wastage = _number("wastage_percent", wastage_percent) or Decimal("0")
        if wastage > 100:
            raise InvalidInputError("wastage_percent cannot exceed 100")
        override = _number("price_override", price_override)
        if override is not None and not (price_override_reason or "").strip():
            raise InvalidInputError("A price override requires a reason")
        if db.query(Product.id).filter(Product.sku == sku.strip()).first():
            raise InvalidInputError(f"SKU {sku} already exists")

        with unit_of_work(db, label="product create"):
            product = Product(
                name=name.strip(),
                sku=sku.strip(),
                metal_type=normalize_metal(metal_type),
                purity=normalize_purity(purity),
                net_weight=net,
                gross_weight=_number("gross_weight", gross_weight),
                wastage_percent=wastage,
                making_charges=money(_number("making_charges", making_charges) or 0),
                stone_weight=_number("stone_weight", stone_weight),
                stone_value=money(_number("stone_value", stone_value)) if stone_value is not None else None,
                collection_name=collection_name,
                price_override=money(override) if override is not None else None,
                price_override_reason=price_override_reason if override is not None else None,
            )
            db.add(product)
            db.flush()

        self.audit.record("CREATE", "PRODUCT", product.id, after=product.to_dict(), actor=actor)
        logger.info(f"Product {product.sku} created by {actor}")
        return product

    def set_price_override(self, db: Session, product_id: int, amount, reason: Optional[str], actor: str = "system") -> Product:
        """Set (amount given) or clear (amount None) the product-level price override."""
        product = self.get_product(db, product_id)
        before = product.to_dict()
        value = _number("price_override", amount)
        if value is not None and not (reason or "").strip():
            raise InvalidInputError("A price override requires a reason")

        with unit_of_work(db, label="price override"):
            product.price_override = money(value) if value is not None else None
            product.price_override_reason = reason.strip() if value is not None else None
            db.flush()

        self.audit.record("PRICE_OVERRIDE", "PRODUCT", product.id, before=before, after=product.to_dict(), actor=actor)
        logger.info(f"Product {product.sku} override set to {product.price_override} by {actor}")
        return product

    # ==========================================
    # Price Breakdown
    # ==========================================

    def price_product(self, db: Session, product_id: int) -> dict:
        """
        Live price of a product with its stored (possibly stale) price alongside.
        final_price is the override when set, else the current calculation;
        never the stored calculated_price.
        """
        product = self.get_product(db, product_id)

        if product.has_override:
            rate = self.rates.find_current_rate(db, product.metal_type, product.purity)
        else:
            rate = self.rates.get_current_rate(db, product.metal_type, product.purity)

        calculation = None
        if rate is not None:
            calculation = calculate_item_price(
                net_weight=product.net_weight,
                wastage_percent=product.wastage_percent,
                metal_rate_per_gram=rate.rate_per_gram,
                making_charges=product.making_charges,
                stone_value=product.stone_value or 0,
            )

        final_price = money(product.price_override) if product.has_override else calculation["total_price"]
        stored = money(product.calculated_price) if product.calculated_price is not None else None

        is_outdated = bool(
            calculation is not None and (
                stored is None
                or product.rate_used_id != rate.id
                or stored != calculation["total_price"]
            )
        )
        difference = None
        if calculation is not None and stored is not None:
            difference = money(calculation["total_price"] - stored)

        return {
            "product": product.to_dict(),
            "current_rate": rate.to_dict() if rate is not None else None,
            "current_calculation": calculation,
            "stored_price": {
                "calculated_price": stored,
                "rate_used": product.rate_used.to_dict() if product.rate_used else None,
                "last_price_update": product.last_price_update,
            },
            "final_price": final_price,
            "price_status": {
                "is_overridden": product.has_override,
                "override_reason": product.price_override_reason,
                "is_outdated": is_outdated,
                "price_difference": difference,
            },
        }


# Singleton
catalog_service = CatalogService()
