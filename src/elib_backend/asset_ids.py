"""
Derive object-store identifiers from stored asset URLs.

Identifiers are not persisted: a book only keeps the URL returned at upload
time, and the identifier needed to destroy the blob is re-derived from it.
Images are stored format-tagged, so their identifier drops the extension;
documents are stored raw, so the extension is part of the identifier.
"""

from __future__ import annotations

from urllib.parse import unquote, urlsplit

from .errors import AssetIdentifierError
from .models import AssetKind, AssetReference


def derive_public_id(url: str, kind: AssetKind) -> str:
    """
    Return the store identifier for an asset URL.

    Example:
        >>> derive_public_id("https://cdn/book-covers/abc123.png", AssetKind.IMAGE)
        "book-covers/abc123"
        >>> derive_public_id("https://cdn/book-pdfs/doc987.pdf", AssetKind.DOCUMENT)
        "book-pdfs/doc987.pdf"

    Raises:
        AssetIdentifierError: If the URL has fewer than two path segments or
            no basename.
    """
    segments = unquote(urlsplit(url).path).lstrip("/").split("/")
    if len(segments) < 2 or not segments[-2] or not segments[-1]:
        raise AssetIdentifierError(f"Cannot derive an asset identifier from {url!r}")

    folder, basename = segments[-2], segments[-1]
    if kind is AssetKind.IMAGE:
        basename = basename.rsplit(".", 1)[0]
        if not basename:
            raise AssetIdentifierError(f"Cannot derive an asset identifier from {url!r}")

    return f"{folder}/{basename}"


def public_id_for(reference: AssetReference) -> str:
    return derive_public_id(reference.url, reference.kind)
