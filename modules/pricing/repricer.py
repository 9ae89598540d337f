"""
Pricing Module - Bulk Repricer
================================
Recomputes Product.calculated_price for a filtered set of products
against one rate. preview() and commit() share the same computation;
commit() persists it in a single transaction.
"""

import logging
from decimal import Decimal
from typing import List, NamedTuple, Optional

from sqlalchemy.orm import Session

from common.audit import audit_sink
from common.exceptions import InvalidInputError, NotFoundError
from common.helpers import now_utc, money, rate_amount
from common.transaction import unit_of_work
from modules.catalog.models import Product
from modules.pricing.calculator import calculate_item_price
from modules.pricing.models import RateMaster
from modules.pricing.service import rate_service, normalize_metal, normalize_purity

logger = logging.getLogger("jewelry.repricer")

SKIP_OVERRIDE_REASON = "Has custom price override"


class RepriceFilter(NamedTuple):
    metal_type: Optional[str] = None
    purity: Optional[str] = None
    collection_name: Optional[str] = None
    product_ids: Optional[List[int]] = None


class BulkRepricer:

    def __init__(self, rates=None, audit=None):
        self.rates = rates or rate_service
        self.audit = audit or audit_sink

    def _resolve_rate(self, db: Session, rate_id: int) -> RateMaster:
        rate = self.rates.get_rate(db, rate_id)
        if not rate.is_currently_valid:
            raise InvalidInputError(f"Rate {rate_id} is not active or has expired")
        return rate

    def _candidates(self, db: Session, rate: RateMaster, flt: RepriceFilter) -> List[Product]:
        # Unset metal/purity scope to the rate's own pair
        metal = normalize_metal(flt.metal_type) if flt.metal_type else rate.metal_type
        purity = normalize_purity(flt.purity) if flt.purity else rate.purity
        if metal != rate.metal_type or purity != rate.purity:
            raise InvalidInputError(
                f"Filter {metal}/{purity} does not match rate {rate.metal_type}/{rate.purity}"
            )

        q = db.query(Product).filter(
            Product.is_active == True,
            Product.deleted_at == None,
            Product.metal_type == metal,
            Product.purity == purity,
        )
        if flt.collection_name:
            q = q.filter(Product.collection_name.ilike(f"%{flt.collection_name.strip()}%"))
        if flt.product_ids:
            q = q.filter(Product.id.in_(list(flt.product_ids)))
        return q.order_by(Product.id.asc()).all()

    def _compute(self, db: Session, rate_id: int, flt: Optional[RepriceFilter], skip_overridden: bool):
        rate = self._resolve_rate(db, rate_id)
        products = self._candidates(db, rate, flt or RepriceFilter())
        if not products:
            raise NotFoundError("No products found matching the criteria")

        changes, skipped = [], []
        for product in products:
            if skip_overridden and product.has_override:
                skipped.append({
                    "product_id": product.id,
                    "name": product.name,
                    "sku": product.sku,
                    "reason": SKIP_OVERRIDE_REASON,
                })
                continue

            calc = calculate_item_price(
                net_weight=product.net_weight,
                wastage_percent=product.wastage_percent,
                metal_rate_per_gram=rate.rate_per_gram,
                making_charges=product.making_charges,
                stone_value=product.stone_value or 0,
            )
            old_price = money(product.calculated_price) if product.calculated_price is not None else Decimal("0.00")
            new_price = calc["total_price"]
            difference = money(new_price - old_price)
            pct = money(difference / old_price * 100) if old_price > 0 else Decimal("0.00")
            changes.append({
                "product_id": product.id,
                "name": product.name,
                "sku": product.sku,
                "net_weight": calc["net_weight"],
                "wastage_percent": calc["wastage_percent"],
                "effective_weight": calc["effective_weight"],
                "making_charges": calc["making_charges"],
                "stone_value": calc["stone_value"],
                "old_rate": rate_amount(product.rate_used.rate_per_gram) if product.rate_used else None,
                "new_rate": rate_amount(rate.rate_per_gram),
                "old_price": old_price,
                "new_price": new_price,
                "price_difference": difference,
                "percentage_change": pct,
            })

        return rate, products, changes, skipped

    def _result(self, rate: RateMaster, products, changes, skipped, key: str) -> dict:
        return {
            "rate": rate.to_dict(),
            "total_products": len(products),
            key: changes,
            "skipped": skipped,
        }

    def preview(self, db: Session, rate_id: int, flt: Optional[RepriceFilter] = None, skip_overridden: bool = True) -> dict:
        """Dry run: what commit() would write. No writes."""
        rate, products, changes, skipped = self._compute(db, rate_id, flt, skip_overridden)
        return self._result(rate, products, changes, skipped, "to_update")

    def commit(
        self,
        db: Session,
        rate_id: int,
        flt: Optional[RepriceFilter] = None,
        skip_overridden: bool = True,
        actor: str = "system",
    ) -> dict:
        """Same computation as preview(), then every non-skipped product is updated in one transaction."""
        with unit_of_work(db, label="bulk reprice"):
            rate, products, changes, skipped = self._compute(db, rate_id, flt, skip_overridden)
            by_id = {p.id: p for p in products}
            now = now_utc()
            for change in changes:
                product = by_id[change["product_id"]]
                product.calculated_price = change["new_price"]
                product.last_price_update = now
                product.rate_used_id = rate.id
            db.flush()
            result = self._result(rate, products, changes, skipped, "updated")

        self.audit.record(
            "BULK_PRICE_UPDATE", "RATE_MASTER", rate_id,
            after={
                "metal_type": result["rate"]["metal_type"],
                "purity": result["rate"]["purity"],
                "rate_per_gram": result["rate"]["rate_per_gram"],
                "products_updated": len(changes),
                "products_skipped": len(skipped),
            },
            actor=actor,
        )
        logger.info(f"Bulk reprice with rate {rate_id}: {len(changes)} updated, {len(skipped)} skipped by {actor}")
        return result


# Singleton
bulk_repricer = BulkRepricer()
