import re
import logging
from typing import List

logger = logging.getLogger(__name__)

SCHEME_PREFIXES = ("http://", "https://")
WWW_PREFIX = "www."
HOST_TERMINATORS = ("/", "?", "#")

URL_PATTERN = re.compile(r"https?://[^\s]+", re.IGNORECASE)


def normalize_domain(raw: str) -> str:
    """
    Canonicalize a URL or user-supplied string into a comparable domain key.

    Strips the scheme, a leading ``www.``, everything from the first ``/``,
    ``?`` or ``#`` on, and lower-cases the result. Never raises: anything odd
    comes back as the lower-cased input.

    >>> normalize_domain("HTTPS://WWW.Example.com/path?x=1")
    'example.com'
    >>> normalize_domain("not a url")
    'not a url'
    """
    if raw is None:
        return ""
    try:
        value = str(raw).strip().lower()

        for prefix in SCHEME_PREFIXES:
            if value.startswith(prefix):
                value = value[len(prefix):]
                break

        if value.startswith(WWW_PREFIX):
            value = value[len(WWW_PREFIX):]

        cut = min((value.find(c) for c in HOST_TERMINATORS if value.find(c) > 0), default=-1)
        if cut > 0:
            value = value[:cut]

        return value
    except Exception as e:
        logger.warning(f"⚠️ Could not normalize {raw!r}: {e}")
        return str(raw).lower()


def extract_urls(text: str) -> List[str]:
    """Return the http(s) URLs in a message, in order, without repeats"""
    if not text:
        return []
    return list(dict.fromkeys(URL_PATTERN.findall(text)))


def extract_domains(text: str) -> List[str]:
    """Distinct normalized domains of every URL in a message"""
    return list(dict.fromkeys(normalize_domain(url) for url in extract_urls(text)))
