"""HTTP fetching and HTML text extraction for client and supplier web pages."""

import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup, Tag
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ja,en-US;q=0.7,en;q=0.5",
}

SOCIAL_HOSTS = {
    "instagram": ("instagram.com",),
    "x": ("twitter.com", "x.com"),
}


CONTENT_SELECTORS = ("main", "article", "[role='main']", ".product", "#product", ".content", "#content")
CHROME_TAGS = ["nav", "header", "footer", "aside", "script", "style", "noscript", "form"]
CHROME_CLASS = re.compile(r"cookie|banner|popup|modal|overlay|sidebar|breadcrumb", re.I)

_RETRYABLE = (requests.ConnectionError, requests.Timeout)


def fetch_url(
    url: str,
    headers: Optional[dict] = None,
    timeout: int = 10,
) -> Optional[requests.Response]:
    """GET a page, retrying connection errors and timeouts.

    Returns None for HTTP error statuses and when retries run out.
    """
    try:
        response = _get(url, {**DEFAULT_HEADERS, **(headers or {})}, timeout)
    except requests.RequestException as e:
        logger.error("Giving up on %s: %s", url, e)
        return None

    if response.status_code >= 400:
        logger.warning("HTTP %d for %s", response.status_code, url)
        return None
    return response


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(_RETRYABLE),
    reraise=True,
)
def _get(url: str, headers: dict, timeout: int) -> requests.Response:
    return requests.get(url, headers=headers, timeout=timeout)


def _page_title(soup: BeautifulSoup) -> str:
    for tag in (soup.find("title"), soup.find("h1")):
        if tag is not None:
            text = tag.get_text(strip=True)
            if text:
                return text
    return ""


def _content_area(soup: BeautifulSoup, preferred: str) -> Optional[Tag]:
    for selector in (preferred, *CONTENT_SELECTORS):
        area = soup.select_one(selector)
        if area is not None:
            return area
    return soup.find("body")


def extract_content(html: str, content_selector: str = "main") -> tuple[str, str]:
    """Return (title, text) for the main content of a product or company page."""
    soup = BeautifulSoup(html, "lxml")
    title = _page_title(soup)

    area = _content_area(soup, content_selector)
    if area is None:
        return title, ""

    for tag in area.find_all(CHROME_TAGS):
        tag.decompose()
    for tag in area.find_all(class_=CHROME_CLASS):
        tag.decompose()

    return title, _extract_structured_text(area)


HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
BLOCK_TAGS = ("p", "div", "section", "article", "main", "blockquote", "span")


def _extract_structured_text(element: Tag) -> str:
    """Flatten an element to text, keeping headings, lists and spec tables readable."""
    parts = []
    for child in element.children:
        if isinstance(child, Tag):
            text = _flatten_tag(child)
        else:
            text = str(child).strip()
        if text and text.strip():
            parts.append(text)
    return "\n".join(parts)


def _flatten_tag(tag: Tag) -> str:
    name = tag.name
    if name == "table":
        return _extract_table(tag)
    if name == "dl":
        return _extract_definitions(tag)
    if name in HEADING_TAGS:
        return f"\n{'#' * int(name[1])} {tag.get_text(strip=True)}\n"
    if name in ("ul", "ol"):
        return "\n".join(f"- {li.get_text(strip=True)}" for li in tag.find_all("li", recursive=False))
    if name in BLOCK_TAGS:
        return _extract_structured_text(tag)
    return tag.get_text(strip=True)


def _extract_definitions(dl: Tag) -> str:
    """Supplier spec sheets list INCI name, origin and price as dt/dd pairs."""
    lines = []
    for dt in dl.find_all("dt"):
        dd = dt.find_next_sibling("dd")
        lines.append(f"{dt.get_text(strip=True)}: {dd.get_text(strip=True) if dd else ''}")
    return "\n".join(lines)


def _extract_table(table: Tag) -> str:
    """Spec table as pipe-separated rows."""
    rows = [
        "| " + " | ".join(cell.get_text(strip=True) for cell in cells) + " |"
        for cells in (tr.find_all(["th", "td"]) for tr in table.find_all("tr"))
        if cells
    ]
    return "\n" + "\n".join(rows) + "\n" if rows else ""


def fetch_page_text(url: str) -> tuple[str, str]:
    """Fetch a page and return (title, text); ("", "") when the page is unavailable."""
    response = fetch_url(url)
    if response is None:
        return "", ""
    return extract_content(response.text)


def extract_social_links(html: str, base_url: str = "") -> dict[str, str]:
    """Return the first Instagram and X/Twitter profile links found in anchors."""
    soup = BeautifulSoup(html, "lxml")
    links = {name: "" for name in SOCIAL_HOSTS}

    for a_tag in soup.find_all("a", href=True):
        href = a_tag["href"].strip()
        if href.startswith("//"):
            href = "https:" + href
        elif not urlparse(href).scheme:
            href = urljoin(base_url, href) if href.startswith("/") else f"https://{href}"
        host = urlparse(href).netloc.lower()
        if host.startswith("www."):
            host = host[4:]
        for name, hosts in SOCIAL_HOSTS.items():
            if not links[name] and any(host == h or host.endswith("." + h) for h in hosts):
                links[name] = href
        if all(links.values()):
            break

    return links
