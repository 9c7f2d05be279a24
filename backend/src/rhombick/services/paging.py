"""Page/limit checks shared by the listing services."""

from rhombick.domain.errors import ValidationError


def page_offset(page: int, limit: int, max_page_size: int) -> int:
    """
    Validate 1-based paging parameters and return the row offset.

    Raises:
        ValidationError: If page < 1 or limit is outside 1..max_page_size.
    """
    errors: dict[str, str] = {}
    if page < 1:
        errors["page"] = "must be at least 1"
    if limit < 1 or limit > max_page_size:
        errors["limit"] = f"must be between 1 and {max_page_size}"
    if errors:
        raise ValidationError("Invalid pagination parameters", errors)
    return (page - 1) * limit
