"""Cart and order totals."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.config import Settings, get_settings
from libs.common.currency import ZERO, line_total, to_money
from services.store_service.models import Cart, CartItem


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal


def items_subtotal(items: Iterable[CartItem]) -> Decimal:
    return to_money(sum((line_total(item.price, item.quantity) for item in items), ZERO))


def shipping_for(subtotal: Decimal, settings: Settings) -> Decimal:
    if subtotal <= 0 or subtotal >= settings.FREE_SHIPPING_THRESHOLD:
        return ZERO
    return to_money(settings.DEFAULT_SHIPPING_COST)


def tax_for(subtotal: Decimal, settings: Settings) -> Decimal:
    if not settings.CALCULATE_TAX or settings.TAX_RATE <= 0:
        return ZERO
    return to_money(subtotal * settings.TAX_RATE)


def order_total(
    subtotal: Decimal, tax: Decimal, shipping: Decimal, discount: Decimal
) -> Decimal:
    return to_money(
        to_money(subtotal) + to_money(tax) + to_money(shipping) - to_money(discount)
    )


def recalculate_cart(cart: Cart, settings: Optional[Settings] = None) -> Cart:
    """Refresh line subtotals and the cart's derived totals in place."""
    settings = settings or get_settings()
    for item in cart.items:
        item.subtotal = line_total(item.price, item.quantity)

    subtotal = items_subtotal(cart.items)
    cart.subtotal = subtotal
    cart.shipping = shipping_for(subtotal, settings)
    cart.tax = tax_for(subtotal, settings)
    discount = to_money(cart.discount or 0)
    cart.discount = min(discount, subtotal)
    cart.total = max(ZERO, order_total(subtotal, cart.tax, cart.shipping, cart.discount))
    return cart


def empty_cart_totals(cart: Cart) -> None:
    cart.subtotal = ZERO
    cart.tax = ZERO
    cart.shipping = ZERO
    cart.discount = ZERO
    cart.total = ZERO


def compute_order_totals(
    cart: Cart, settings: Optional[Settings] = None
) -> OrderTotals:
    """Totals for an order placed from ``cart``.

    The subtotal is taken from the line items. Tax already on the cart is
    kept; otherwise it is derived from the subtotal when tax is enabled.
    """
    settings = settings or get_settings()
    subtotal = items_subtotal(cart.items)
    tax = to_money(cart.tax or 0)
    if tax == ZERO:
        tax = tax_for(subtotal, settings)
    shipping = to_money(cart.shipping or 0)
    discount = to_money(cart.discount or 0)
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=order_total(subtotal, tax, shipping, discount),
    )
