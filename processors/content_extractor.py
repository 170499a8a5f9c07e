"""Content extractor for cleaning fetched web page text before it goes into a prompt.

Works on the text produced by ``scrapers.utils.extract_content``: removes
cookie banners, newsletter and share CTAs, copyright lines (English and
Japanese), normalizes whitespace and caps the length.
"""

import logging
import re

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 20000


class ContentExtractor:
    """Cleans and normalizes fetched page text."""

    def __init__(self, max_chars: int = MAX_PROMPT_CHARS):
        self.max_chars = max_chars
        self._strip_patterns = [
            # Cookie consent / GDPR banners
            re.compile(
                r"(we use cookies|cookie policy|accept all cookies|manage preferences).*?\.",
                re.IGNORECASE | re.DOTALL,
            ),
            re.compile(r"(クッキー|Cookie)[^\n。]*?(使用|利用|同意)[^\n。]*。?"),
            # Newsletter signup CTAs
            re.compile(
                r"(subscribe to|sign up for|join our|get the latest).*?(newsletter|updates|news).*?\.",
                re.IGNORECASE | re.DOTALL,
            ),
            re.compile(r"(メルマガ|メールマガジン|ニュースレター)[^\n]*?(登録|購読)[^\n]*"),
            # Social media share buttons text
            re.compile(
                r"(share on|follow us on|tweet this|share this).*?(twitter|linkedin|facebook|instagram|x\.com).*?\n",
                re.IGNORECASE,
            ),
            # Copyright notices
            re.compile(r"(©|copyright)\s*\d{4}[^\n]*", re.IGNORECASE),
        ]

    def clean(self, text: str) -> str:
        """Return cleaned text, truncated to ``max_chars``."""
        for pattern in self._strip_patterns:
            text = pattern.sub("", text)

        text = self._normalize_whitespace(text)
        text = re.sub(r"\n{3,}", "\n\n", text).strip()

        if len(text) > self.max_chars:
            logger.info("Truncating page text from %d to %d chars", len(text), self.max_chars)
            text = text[: self.max_chars]
        return text

    def _normalize_whitespace(self, text: str) -> str:
        """Collapse runs of spaces, keeping table and list lines intact."""
        lines = []
        for line in text.replace("\r\n", "\n").replace("　", " ").split("\n"):
            stripped = line.strip()
            if stripped.startswith(("|", "-", "*")):
                lines.append(line.rstrip())
            else:
                lines.append(re.sub(r"[ \t]{2,}", " ", stripped))
        return "\n".join(lines)
