from typing import Optional

VALID_STATUSES = {"Borrowed", "Overdue", "Returned"}


def blank_to_none(value: Optional[str]) -> Optional[str]:
    if value == "":
        return None
    return value


def normalize_status(status: Optional[str]) -> Optional[str]:
    if not status:
        return None
    # query strings arrive in any case ("overdue", "OVERDUE")
    status = status.strip().capitalize()
    if status in VALID_STATUSES:
        return status
    return None


def normalize_limit(limit: int, *, min_value: int = 1, max_value: int = 500) -> int:
    if limit < min_value:
        return min_value
    if limit > max_value:
        return max_value
    return limit


def normalize_offset(offset: int) -> int:
    if offset < 0:
        return 0
    return offset
