import logging
import re
from typing import Iterator, Optional, Tuple

from ..config import settings
from ..constants import HOAS_COLLECTION
from .documents import DocumentStore, DocumentStoreError

logger = logging.getLogger(__name__)

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


class SlugResolutionFailed(Exception):
    pass


def generate_slug(name: str) -> str:
    """Derive a URL-safe HOA identifier; may be empty for all-symbol names."""
    slug = _DISALLOWED.sub("", (name or "").lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")


def slug_candidate(base_slug: str, index: int) -> str:
    return base_slug if index == 0 else f"{base_slug}-{index}"


def slug_candidates(base_slug: str, start: int = 0) -> Iterator[Tuple[int, str]]:
    index = start
    while True:
        yield index, slug_candidate(base_slug, index)
        index += 1


def find_free_slug(
    store: DocumentStore,
    base_slug: str,
    *,
    start: int = 0,
    max_attempts: Optional[int] = None,
) -> Tuple[str, int]:
    """Check ``base``, ``base-1``, ``base-2``... and return the first unused one.

    ``max_attempts`` caps the suffix index, not the number of calls, so a
    caller resuming after a lost write race stays within the same budget.
    """
    limit = max_attempts if max_attempts is not None else settings.slug_max_attempts
    for index, candidate in slug_candidates(base_slug, start):
        if index >= limit:
            break
        try:
            taken = store.exists(HOAS_COLLECTION, candidate)
        except DocumentStoreError as exc:
            raise SlugResolutionFailed(f"Could not check availability of '{candidate}'.") from exc
        if not taken:
            return candidate, index
        logger.debug("Slug %s is taken", candidate)
    raise SlugResolutionFailed(f"No free slug for '{base_slug}' within {limit} attempts.")


def resolve_unique_slug(store: DocumentStore, base_slug: str) -> str:
    slug, _ = find_free_slug(store, base_slug)
    return slug
