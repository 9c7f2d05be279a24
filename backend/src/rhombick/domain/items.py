"""
Line item collection operations on an invoice.

Items are addressed by their generated id. These helpers only rearrange
the item tuple; callers recompute totals before persisting.
"""

from dataclasses import replace

from .errors import NotFound
from .models import Invoice, LineItem, LineItemPatch, new_id


def find_item(invoice: Invoice, item_id: str) -> LineItem:
    """
    Look up an item by id.

    Raises:
        NotFound: If no item of the invoice has that id.
    """
    for item in invoice.items:
        if item.id == item_id:
            return item
    raise NotFound("Item", item_id)


def append_item(invoice: Invoice, item: LineItem) -> Invoice:
    """Append `item` after the existing items."""
    return replace(invoice, items=(*invoice.items, item))


def patch_item(invoice: Invoice, item_id: str, patch: LineItemPatch) -> tuple[Invoice, LineItem]:
    """
    Merge `patch` into the item with `item_id`, keeping its position.

    Returns:
        The updated invoice and the merged item.
    """
    current = find_item(invoice, item_id)
    merged = patch.apply(current)
    items = tuple(merged if item.id == item_id else item for item in invoice.items)
    return replace(invoice, items=items), merged


def drop_item(invoice: Invoice, item_id: str) -> Invoice:
    """
    Remove the item with `item_id`.

    Raises:
        NotFound: If the item count would not change.
    """
    items = tuple(item for item in invoice.items if item.id != item_id)
    if len(items) == len(invoice.items):
        raise NotFound("Item", item_id)
    return replace(invoice, items=items)


def adopt_items(current: Invoice | None, items: tuple[LineItem, ...]) -> tuple[LineItem, ...]:
    """
    Give every item an id owned by `current`.

    Items keep their id only if `current` already holds an item with it;
    all other items (and every item of a new invoice) get a fresh id.
    """
    owned = {item.id for item in current.items} if current is not None else set()
    return tuple(item if item.id in owned else replace(item, id=new_id()) for item in items)
