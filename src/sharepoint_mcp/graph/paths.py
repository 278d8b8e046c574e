"""Map logical library paths to Graph path-based addressing.

Graph addresses items relative to the drive root as ``/root:/{path}:``.
Each path component is percent-encoded on its own so that ``/`` stays a
separator while spaces, ``#``, ``?``, ``%`` and non-ASCII characters are
escaped. An unescaped ``#`` or ``?`` would silently truncate the path and
target a different item.
"""

from urllib.parse import quote

ROOT_SEGMENT = "/root"


def encode_path(path: str) -> str:
    """Percent-encode every component of ``path``, keeping ``/`` separators."""
    return "/".join(quote(part, safe="") for part in path.split("/"))


def clean_path(path: str | None) -> str:
    """Strip leading and trailing slashes; None becomes an empty string."""
    return (path or "").strip("/")


def resolve_folder_path(folder_path: str | None) -> str:
    """Resolve a folder path to its Graph path segment.

    Args:
        folder_path: Path relative to the library root. Empty, None or "/"
            mean the root itself.

    Returns:
        ``/root`` or ``/root:/{encoded}:``.
    """
    cleaned = clean_path(folder_path)
    if not cleaned:
        return ROOT_SEGMENT
    return f"{ROOT_SEGMENT}:/{encode_path(cleaned)}:"


def resolve_file_path(folder_path: str | None, file_name: str) -> str:
    """Resolve a file inside a folder to its Graph path segment."""
    folder = clean_path(folder_path)
    full_path = f"{folder}/{file_name}" if folder else file_name
    return f"{ROOT_SEGMENT}:/{encode_path(full_path)}:"


def join_path(parent: str | None, name: str) -> str:
    """Join a logical parent path and a child name."""
    parent = clean_path(parent)
    return f"{parent}/{name}" if parent else name
