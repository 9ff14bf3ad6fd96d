"""
Base utilities and shared functions for scraping tasks.
"""
import logging
import urllib.parse


def _log(logger: logging.Logger, level: str, message: str):
    """Centralized logging utility for all tasks."""
    getattr(logger, level.lower())(message)


def registrable_host(url: str) -> str:
    """Host without port and leading www."""
    host = (urllib.parse.urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def is_same_site(url: str, other: str) -> bool:
    host = registrable_host(url)
    return bool(host) and host == registrable_host(other)


def join_path(url: str, path: str) -> str:
    """Append a service path to the URL's own path; an empty path keeps the URL as given.

    ``https://chain.example/locations/nyc`` + ``/services`` gives
    ``https://chain.example/locations/nyc/services``. Query and fragment are dropped.
    """
    if not path:
        return url
    parsed = urllib.parse.urlparse(url)
    joined = parsed.path.rstrip("/") + "/" + path.lstrip("/")
    return urllib.parse.urlunparse((parsed.scheme, parsed.netloc, joined, "", "", ""))
