"""
s3_archive/utils.py — shared helpers: logging, locator parsing.
"""
import logging
import posixpath
from typing import Tuple

from rich.logging import RichHandler
from rich.console import Console

console = Console()


# ─── Logging ──────────────────────────────────────────────────────────────────

def setup_logging(level: int = logging.INFO) -> None:
    """Configure Rich-based logging for the whole application."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


log = logging.getLogger("s3_archive")


# ─── Locator helpers ──────────────────────────────────────────────────────────

def split_uri(uri: str) -> Tuple[str, str]:
    """
    Split a locator into (scheme, target).

    Example:
        split_uri("fedora://2023-05/scan.tif") → ("fedora", "2023-05/scan.tif")
        split_uri("/tmp/scan.tif")            → ("", "/tmp/scan.tif")
    """
    scheme, sep, target = uri.partition("://")
    if not sep:
        return "", uri
    return scheme.lower(), target


def uri_dirname(uri: str) -> str:
    """Directory part of a locator, keeping the scheme (like PHP's dirname)."""
    scheme, target = split_uri(uri)
    parent = posixpath.dirname(target)
    return f"{scheme}://{parent}" if scheme else parent


def uri_basename(uri: str) -> str:
    """Last path component of a locator."""
    return posixpath.basename(split_uri(uri)[1])


def swap_scheme(uri: str, scheme: str) -> str:
    """
    Replace the scheme of a locator.

    Example:
        swap_scheme("fedora://2023-05/scan.tif", "s3") → "s3://2023-05/scan.tif"
    """
    return f"{scheme}://{split_uri(uri)[1]}"


def join_uri(directory: str, name: str) -> str:
    """Append a name to a directory locator without doubling separators."""
    if directory.endswith("://"):
        return f"{directory}{name}"
    return f"{directory.rstrip('/')}/{name}"
