"""
Field validation rules for customers, invoices and line items.

Pure functions: each rule collects every problem it finds and raises a
single ValidationError carrying field-level messages, so clients can
show all mistakes at once.

Design Decisions:
- Quantity must be strictly positive; fractional quantities are allowed
- Rate may be zero (free items) but never negative
- Quantity, rate and their product must be finite numbers
- Derived invoice fields are not validated here; `recompute` owns them
"""

import math
import re

from .errors import ValidationError
from .models import Customer, Invoice, InvoiceStatus, LineItem

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9 \-()]{5,19}$")

MAX_TEXT_LENGTH = 256


def _require_text(errors: dict[str, str], name: str, value: str | None) -> None:
    if value is None or not value.strip():
        errors[name] = "is required"
    elif len(value) > MAX_TEXT_LENGTH:
        errors[name] = f"must be at most {MAX_TEXT_LENGTH} characters"


def _raise_if_any(errors: dict[str, str], what: str) -> None:
    if errors:
        summary = ", ".join(f"{name} {problem}" for name, problem in errors.items())
        raise ValidationError(f"Invalid {what}: {summary}", errors)


def line_item_errors(item: LineItem, prefix: str = "") -> dict[str, str]:
    """Collect problems with a single line item."""
    errors: dict[str, str] = {}
    _require_text(errors, f"{prefix}description", item.description)

    if item.quantity is None:
        errors[f"{prefix}quantity"] = "is required"
    elif not math.isfinite(item.quantity):
        errors[f"{prefix}quantity"] = "must be a finite number"
    elif item.quantity <= 0:
        errors[f"{prefix}quantity"] = "must be greater than 0"

    if item.rate is None:
        errors[f"{prefix}rate"] = "is required"
    elif not math.isfinite(item.rate):
        errors[f"{prefix}rate"] = "must be a finite number"
    elif item.rate < 0:
        errors[f"{prefix}rate"] = "must not be negative"

    quantity_ok = f"{prefix}quantity" not in errors
    rate_ok = f"{prefix}rate" not in errors
    if quantity_ok and rate_ok and not math.isfinite(item.calculated_amount):
        errors[f"{prefix}amount"] = "quantity * rate is too large"

    return errors


def validate_line_item(item: LineItem) -> None:
    """Raise ValidationError if the item is not billable."""
    _raise_if_any(line_item_errors(item), "item")


def validate_invoice(invoice: Invoice) -> None:
    """
    Validate invoice header fields and every item.

    Item errors are keyed `items[<index>].<field>`.
    """
    errors: dict[str, str] = {}
    _require_text(errors, "invoice_number", invoice.invoice_number)
    _require_text(errors, "customer_id", invoice.customer_id)

    if invoice.invoice_date is None:
        errors["invoice_date"] = "is required"

    if invoice.status is None:
        errors["status"] = "is required"
    elif not isinstance(invoice.status, InvoiceStatus):
        errors["status"] = "is not a known status"

    seen: set[str] = set()
    for index, item in enumerate(invoice.items):
        errors.update(line_item_errors(item, prefix=f"items[{index}]."))
        if item.id in seen:
            errors[f"items[{index}].id"] = "is duplicated"
        seen.add(item.id)

    _raise_if_any(errors, "invoice")


def validate_customer(customer: Customer) -> None:
    """Validate identity, contact and address fields of a customer."""
    errors: dict[str, str] = {}
    _require_text(errors, "customer_code", customer.customer_code)
    _require_text(errors, "name", customer.name)
    _require_text(errors, "email", customer.email)
    _require_text(errors, "phone_number", customer.phone_number)

    if "email" not in errors and not EMAIL_PATTERN.match(customer.email):
        errors["email"] = "is not a valid email address"

    if "phone_number" not in errors and not PHONE_PATTERN.match(customer.phone_number):
        errors["phone_number"] = "is not a valid phone number"

    _raise_if_any(errors, "customer")
