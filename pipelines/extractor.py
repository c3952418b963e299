"""Main-content extraction from fetched post pages."""

import logging
import re
from typing import Sequence

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 200

BOILERPLATE_TAGS = ("script", "style", "nav", "header", "footer", "form", "noscript")
CONTENT_SELECTORS = ("article", ".post", ".entry-content", ".content", ".post-content")

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


class ContentExtractor:
    """Strips page chrome and returns whitespace-normalized article text."""

    def __init__(self,
                 selectors: Sequence[str] = CONTENT_SELECTORS,
                 min_length: int = MIN_CONTENT_LENGTH):
        self.selectors = tuple(selectors)
        self.min_length = min_length

    def extract(self, html: str) -> str:
        soup = BeautifulSoup(html or "", "html.parser")

        for element in soup.find_all(list(BOILERPLATE_TAGS)):
            # Nested chrome (nav inside header) is already gone with its parent
            if not element.decomposed:
                element.decompose()

        text = ""
        for selector in self.selectors:
            matches = soup.select(selector)
            if not matches:
                continue
            text = collapse_whitespace(" ".join(el.get_text(" ") for el in matches))
            if len(text) > self.min_length:
                logger.debug(f"Extracted {len(text)} chars via selector {selector!r}")
                return text

        body = soup.body if soup.body is not None else soup
        fallback = collapse_whitespace(body.get_text(" "))
        logger.debug(f"No content selector matched; body fallback gave {len(fallback)} chars")
        return fallback

    def has_enough_content(self, text: str) -> bool:
        """False means the caller should skip the page rather than store it."""
        return len(text or "") >= self.min_length
