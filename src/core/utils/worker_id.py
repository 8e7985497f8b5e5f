"""Worker ID generation using coolname for memorable identifiers."""

from coolname import generate_slug


def generate_worker_id(prefix: str = "", index: int | None = None) -> str:
    """Generate a unique, memorable worker ID.

    Args:
        prefix: Optional prefix (e.g., "income-calculation")
        index: Optional ordinal of the worker inside a pool

    Examples:
        >>> generate_worker_id()
        'brave-golden-tiger'
        >>> generate_worker_id("income-calculation", 2)
        'income-calculation-2-swift-blue-falcon'
    """
    parts = []
    if prefix:
        parts.append(prefix)
    if index is not None:
        parts.append(str(index))
    parts.append(generate_slug(3))
    return "-".join(parts)
