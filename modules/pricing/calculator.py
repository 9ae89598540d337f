"""
Pricing Module - Calculator
=============================
Jewelry price calculation with full audit trail.
Pure functions: no database, no clock, no cache.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from common.exceptions import InvalidInputError


def _to_decimal(name, value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be a number")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{name} must be a number")
    if not d.is_finite():
        raise InvalidInputError(f"{name} must be finite")
    if d < 0:
        raise InvalidInputError(f"{name} cannot be negative")
    return d


def calculate_item_price(
    net_weight,
    wastage_percent,
    metal_rate_per_gram,
    making_charges,
    stone_value=0,
) -> dict:
    """
    Calculate full jewelry price breakdown.

    Args:
        net_weight: Net metal weight in grams (e.g., 24.000)
        wastage_percent: Wastage added on top of net weight, 0..100
        metal_rate_per_gram: Current rate for the item's metal and purity
        making_charges: Fixed making charge amount
        stone_value: Value of stones set in the item

    Returns:
        dict with: net_weight, wastage_percent, effective_weight,
        metal_rate_per_gram, metal_amount, making_charges, stone_value,
        total_price, audit
    """
    d_net = _to_decimal("net_weight", net_weight)
    d_wastage = _to_decimal("wastage_percent", wastage_percent)
    d_rate = _to_decimal("metal_rate_per_gram", metal_rate_per_gram)
    d_making = _to_decimal("making_charges", making_charges)
    d_stone = _to_decimal("stone_value", stone_value)

    # Guards
    if d_net <= 0:
        raise InvalidInputError("net_weight must be greater than zero")
    if d_rate <= 0:
        raise InvalidInputError("metal_rate_per_gram must be greater than zero")
    if d_wastage > 100:
        raise InvalidInputError("wastage_percent cannot exceed 100")

    money = lambda x: x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    # Metal amount uses the unrounded effective weight
    effective_weight = d_net * (Decimal("1") + d_wastage / Decimal("100"))
    metal_amount = effective_weight * d_rate
    total_price = metal_amount + d_making + d_stone

    return {
        "net_weight": d_net,
        "wastage_percent": d_wastage,
        "effective_weight": effective_weight.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP),
        "metal_rate_per_gram": d_rate,
        "metal_amount": money(metal_amount),
        "making_charges": money(d_making),
        "stone_value": money(d_stone),
        "total_price": money(total_price),
        "audit": {
            "formula": "net_weight * (1 + wastage_percent/100) * rate + making_charges + stone_value",
            "rounding": "ROUND_HALF_UP",
            "unrounded_total": total_price,
        },
    }


def calculate_purchase_cost(net_weight, metal_rate_per_gram, making_charges=0, stone_value=0) -> Decimal:
    """Cost of a unit bought at net weight (no wastage), used when receiving stock."""
    d_net = _to_decimal("net_weight", net_weight)
    d_rate = _to_decimal("metal_rate_per_gram", metal_rate_per_gram)
    total = d_net * d_rate + _to_decimal("making_charges", making_charges) + _to_decimal("stone_value", stone_value)
    return total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
