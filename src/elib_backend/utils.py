"""
Small filesystem and naming helpers shared by staging and the asset store.
"""

from __future__ import annotations

from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def split_extension(filename: str) -> tuple[str, str]:
    """
    Split a filename into stem and extension components.

    Example:
        >>> split_extension("document.pdf")
        ("document", ".pdf")
        >>> split_extension("3f2a9c")
        ("3f2a9c", "")
    """
    path = Path(filename)
    return path.stem, path.suffix


def mime_subtype(mime_type: str) -> str:
    """
    Return the subtype of a mime type, used as the stored image format.

    Example:
        >>> mime_subtype("image/png")
        "png"
    """
    return mime_type.split(";", 1)[0].strip().split("/")[-1].lower()
