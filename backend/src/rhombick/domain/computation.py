"""
Invoice total computation.

`recompute` is the only place derived invoice fields are written. Every
service path that changes an invoice's items or customer calls it right
before the single repository write, so stored totals always agree with
the stored items.

Pure functions: no I/O, no clock, no randomness.
"""

import math
from dataclasses import replace
from typing import Iterable

from .errors import PreconditionFailed, ValidationError
from .models import Customer, Invoice, LineItem
from .tax import TaxPolicy


def compute_subtotal(items: Iterable[LineItem]) -> float:
    """
    Sum quantity * rate over the items.

    Accumulates left-to-right in stored order so the same items always
    produce the same float.
    """
    subtotal = 0.0
    for item in items:
        subtotal += item.quantity * item.rate
    return subtotal


def compute_tax_amount(subtotal: float, combined_rate: float) -> float:
    """Tax on `subtotal` at `combined_rate` percent."""
    return subtotal * combined_rate / 100


def refresh_item_amounts(items: Iterable[LineItem]) -> tuple[LineItem, ...]:
    """Return the items with `amount` set to quantity * rate."""
    return tuple(replace(item, amount=item.calculated_amount) for item in items)


def recompute(invoice: Invoice, customer: Customer | None, policy: TaxPolicy) -> Invoice:
    """
    Derive item amounts, tax rates, subtotal, tax amount and total.

    Steps:
        1. subtotal from the current items
        2. tax rates from the policy for the current customer
        3. overwrite the stored rates
        4. tax amount
        5. total amount

    Args:
        invoice: The invoice with its current items and customer id
        customer: The customer `invoice.customer_id` refers to
        policy: Tax policy in effect

    Returns:
        A new invoice with all derived fields consistent.

    Raises:
        PreconditionFailed: If the customer is missing or is not the one
            the invoice refers to.
        ValidationError: If the total overflows to a non-finite number.
    """
    rates = policy.classify(customer)
    if customer is not None and customer.id != invoice.customer_id:
        raise PreconditionFailed(
            f"Customer {customer.id} does not match invoice customer {invoice.customer_id}"
        )

    items = refresh_item_amounts(invoice.items)
    subtotal = compute_subtotal(items)
    tax_amount = compute_tax_amount(subtotal, rates.combined)
    total_amount = subtotal + tax_amount
    if not math.isfinite(total_amount):
        raise ValidationError.for_field("items", "invoice total is too large")

    return replace(
        invoice,
        items=items,
        local_tax_rate_a=rates.local_a,
        local_tax_rate_b=rates.local_b,
        interstate_tax_rate=rates.interstate,
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=total_amount,
    )
