"""Slug generation for store URLs.

A slug is the lowercased, hyphenated, accent-folded store name:
"Café A" -> "cafe-a". Collisions get a numeric suffix: "cafe-a-2", "cafe-a-3".
"""

import re
import unicodedata

from app.stores.base import StoreBackend

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Derive the base slug for a name.

    Example:
        >>> slugify("Café A & Sons")
        "cafe-a-sons"
    """
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM_RE.sub("-", folded.lower()).strip("-")
    return slug or "store"


async def unique_slug(backend: StoreBackend, name: str, exclude_id: int | None = None) -> str:
    """Get a slug for `name` not used by any other store.

    Args:
        backend: Storage backend.
        name: Store name.
        exclude_id: Store being renamed (its own slug does not count as taken).
    """
    base = slugify(name)
    taken = await backend.slugs_matching(base, exclude_id=exclude_id)
    if base not in taken:
        return base

    n = len(taken) + 1
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"
