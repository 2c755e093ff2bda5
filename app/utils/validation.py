def append_bounded(items: list | None, item: dict, limit: int) -> list:
    """
    Return a new list with `item` appended, keeping only the `limit` most recent entries.

    A new list is returned rather than mutating in place so JSON columns see the change.
    """
    updated = [*(items or []), item]
    if len(updated) > limit:
        updated = updated[-limit:]
    return updated
