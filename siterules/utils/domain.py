"""Domain extraction helpers."""

from urllib.parse import urlparse


def normalize_domain(domain: str) -> str:
    """Normalize a hostname for index lookups (lowercase, no leading www.)."""
    domain = domain.lower().strip().rstrip(".")
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


def extract_domain(url: str) -> str:
    """Extract the lookup domain from a URL or bare hostname.

    Args:
        url: Absolute URL ("https://www.nytimes.com/a") or bare domain
            ("nytimes.com").

    Returns:
        Normalized domain, or "" if no hostname can be parsed.
    """
    url = url.strip()
    if not url:
        return ""

    if "://" not in url:
        url = f"//{url}"

    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return ""

    if not hostname:
        return ""
    return normalize_domain(hostname)
