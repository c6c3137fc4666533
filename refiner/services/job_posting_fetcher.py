"""
Job Posting Fetcher

Scrapes job title, company and description from a job posting URL so the
user does not have to paste them by hand.

Strategy: fetch the static HTML first (fast, httpx + BeautifulSoup). If that
yields a description of 500 characters or less, the page is probably
rendered client-side, so fall back to a headless Chromium render through
Playwright and keep the longest content block. The static fetch and the
browser render are each bounded by the same timeout.

This is best-effort enrichment: every failure (invalid URL, timeout,
connection error, HTTP status, unparseable page) becomes a
JobPostingResult.error asking the user to enter the details manually.
``fetch`` never raises.
"""

import asyncio
import functools
import html
import logging
import re
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from refiner.common.types import JobPostingResult

logger = logging.getLogger(__name__)

# Polite user agent for the static fetch
USER_AGENT = "Mozilla/5.0 (compatible; CvRefiner/1.0; +Personal CV optimization tool)"

# Browser user agent for the rendered fetch
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Bounds the static fetch and, separately, the whole browser render
DEFAULT_TIMEOUT_SECONDS = 10.0
BROWSER_SETTLE_MS = 2000

# Static descriptions at or below this length trigger the browser fallback
STATIC_DESCRIPTION_THRESHOLD = 500
MAX_DESCRIPTION_LENGTH = 10000

INVALID_URL = "Invalid URL format"
TIMED_OUT = "Request timed out. Please try again or enter details manually."
CONNECTION_FAILED = "Could not connect to the website. Please check the URL and try again."
NOTHING_EXTRACTED = "Could not extract job details from this page. Please enter details manually."
RENDER_FAILED = "Could not extract job details. Please enter details manually."

NOISE_SELECTORS = [
    "script",
    "style",
    "noscript",
    "[id*='cookie']",
    "[class*='cookie']",
    "[id*='consent']",
    "[class*='consent']",
    "nav",
    "header[role='banner']",
    "[class*='navigation']",
]

TITLE_SELECTORS = [
    # Teamtailor
    "div[data-controller='job-posting'] h1",
    "h1.text-4xl",
    "h1[class*='font-bold']",
    # Generic job boards
    "h1[class*='job-title']",
    "h1[class*='jobTitle']",
    "h1[class*='posting-headline']",
    "h1[data-qa*='job-title']",
    # Any h1 that is not obviously wrong
    "main h1",
    "article h1",
    "h1",
]

COMPANY_SELECTORS = [
    # Teamtailor logo alt text
    ("a[href*='/jobs'] img[alt]", "alt"),
    ("div[class*='company-name']", None),
    # Generic
    ("span[class*='company']", None),
    ("div[class*='company']", None),
    ("a[class*='company']", None),
    ("[class*='employer']", None),
    ("[data-qa*='company']", None),
]

DESCRIPTION_SELECTORS = [
    # Teamtailor
    "div[data-controller='job-posting'] div[class*='user-content']",
    "div[class*='job-details']",
    # Generic job boards
    "div[class*='job-description']",
    "div[class*='jobDescription']",
    "div#job-description",
    "section[class*='description']",
    "article[class*='job']",
    "div[data-qa*='job-description']",
    # Broader fallbacks
    "main div[class*='content']",
    "article",
    "main",
]

RENDERED_DESCRIPTION_SELECTORS = [
    "div[data-controller='job-posting'] div[class*='user-content']",
    "div[class*='job-description']",
    "div[data-qa='job-description']",
    "main",
    "article",
    "div[role='main']",
]

INVALID_TITLE_PHRASES = [
    "cookie", "accept", "vælg", "choose", "privacy", "terms",
    "navigation", "menu", "skip to", "log in", "sign in",
]

COOKIE_KEYWORDS = ["cookie", "consent", "privacy policy", "terms of service"]

TITLE_SUFFIX_PATTERN = re.compile(r"\s+[-|–]\s+.+$")


# ===== Text helpers =====

def clean_text(text: Optional[str]) -> str:
    """Decode entities and collapse all whitespace to single spaces."""
    if not text or not text.strip():
        return ""
    return re.sub(r"\s+", " ", html.unescape(text)).strip()


def truncate_description(text: str) -> str:
    if len(text) > MAX_DESCRIPTION_LENGTH:
        return text[:MAX_DESCRIPTION_LENGTH] + "..."
    return text


def is_valid_job_title(text: str) -> bool:
    """Reject empty, implausibly short/long, and banner-like titles."""
    if not text or len(text) < 5 or len(text) > 200:
        return False
    lowered = text.lower()
    return not any(phrase in lowered for phrase in INVALID_TITLE_PHRASES)


def is_valid_description(text: str) -> bool:
    """At least 100 chars, and not starting like a cookie/privacy banner."""
    if not text or len(text) < 100:
        return False
    opening = text[:200].lower()
    cookie_hits = sum(1 for keyword in COOKIE_KEYWORDS if keyword in opening)
    return cookie_hits < 2


# ===== HTML extraction =====

def strip_noise(soup: BeautifulSoup) -> None:
    """Remove scripts, cookie/consent banners and navigation in place."""
    for selector in NOISE_SELECTORS:
        for node in soup.select(selector):
            node.decompose()


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    node = soup.find("meta", attrs=attrs)
    if node is None:
        return ""
    return clean_text(node.get("content"))


def extract_job_title(soup: BeautifulSoup) -> str:
    og_title = _meta_content(soup, property="og:title")
    if is_valid_job_title(og_title):
        return og_title

    for selector in TITLE_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = clean_text(node.get_text(" "))
        if is_valid_job_title(text):
            return text

    # Page title without a " - Company" / " | Site" suffix
    if soup.title is not None:
        text = TITLE_SUFFIX_PATTERN.sub("", clean_text(soup.title.get_text(" ")))
        if is_valid_job_title(text):
            return text

    return ""


def extract_company_name(soup: BeautifulSoup) -> str:
    site_name = _meta_content(soup, property="og:site_name")
    if site_name and len(site_name) < 100:
        return site_name

    for selector, attribute in COMPANY_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        raw = node.get(attribute) if attribute else node.get_text(" ")
        text = clean_text(raw)
        if 2 < len(text) < 100:
            return text

    return ""


def extract_description(soup: BeautifulSoup) -> str:
    """First valid description block from a static page; strips noise first."""
    strip_noise(soup)

    for selector in DESCRIPTION_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = clean_text(node.get_text(" "))
        if is_valid_description(text):
            return truncate_description(text)

    meta_description = _meta_content(soup, name="description")
    if is_valid_description(meta_description):
        return truncate_description(meta_description)

    return ""


def extract_rendered_description(soup: BeautifulSoup) -> str:
    """Longest content block from a browser-rendered page."""
    candidates: List[str] = []
    for selector in RENDERED_DESCRIPTION_SELECTORS:
        for node in soup.select(selector):
            text = clean_text(node.get_text(" "))
            if len(text) > 100:
                candidates.append(text)

    if not candidates:
        return ""
    return truncate_description(max(candidates, key=len))


def parse_static_page(page_html: str) -> JobPostingResult:
    soup = BeautifulSoup(page_html, "html.parser")
    job_title = extract_job_title(soup)
    company_name = extract_company_name(soup)
    description = extract_description(soup)

    if not job_title and not description:
        return JobPostingResult.error(NOTHING_EXTRACTED)
    return JobPostingResult.success(job_title, company_name, description)


def parse_rendered_page(page_html: str) -> JobPostingResult:
    soup = BeautifulSoup(page_html, "html.parser")
    strip_noise(soup)
    job_title = extract_job_title(soup)
    company_name = extract_company_name(soup)
    description = extract_rendered_description(soup)

    if not job_title and not description:
        return JobPostingResult.error(NOTHING_EXTRACTED)
    return JobPostingResult.success(job_title, company_name, description)


def is_valid_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


async def render_with_playwright(url: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> str:
    """Render a page in headless Chromium and return its HTML."""
    timeout_ms = timeout_seconds * 1000
    # Import here to avoid loading Playwright on startup
    from playwright.async_api import async_playwright

    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=True,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        try:
            page = await browser.new_page(user_agent=BROWSER_USER_AGENT)
            await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            # Lazy-loaded content
            await page.wait_for_timeout(min(BROWSER_SETTLE_MS, timeout_ms // 5))
            return await page.content()
        finally:
            await browser.close()


class JobPostingFetcher:
    """Fetches and parses job postings. ``fetch`` never raises."""

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        use_browser: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
        renderer: Optional[Callable[[str], Awaitable[str]]] = None,
    ):
        """
        Args:
            timeout_seconds: Timeout for the static fetch, and separately for
                             the whole browser render
            use_browser: Whether to fall back to a headless browser render
            http_client: Optional pre-built client (tests inject a MockTransport)
            renderer: Returns rendered HTML for a URL (defaults to Playwright)
        """
        self.use_browser = use_browser
        self.timeout_seconds = timeout_seconds
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self._renderer = renderer or functools.partial(render_with_playwright, timeout_seconds=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.ConnectError),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.2, max=1),
        reraise=True,
    )
    async def _get(self, url: str) -> httpx.Response:
        return await self._client.get(url)

    async def _fetch_static(self, url: str) -> JobPostingResult:
        logger.info("Attempting static HTML extraction...")
        try:
            response = await self._get(url)
        except httpx.TimeoutException:
            logger.warning(f"Static fetch timed out: {url}")
            return JobPostingResult.error(TIMED_OUT)
        except httpx.RequestError as e:
            logger.warning(f"HTTP error fetching job posting: {e}")
            return JobPostingResult.error(CONNECTION_FAILED)

        if not response.is_success:
            return JobPostingResult.error(f"Failed to fetch page: {response.status_code}")

        try:
            return parse_static_page(response.text)
        except Exception as e:
            logger.warning(f"Static extraction failed: {e}")
            return JobPostingResult.error(NOTHING_EXTRACTED)

    async def _fetch_rendered(self, url: str) -> JobPostingResult:
        logger.info("Static extraction insufficient, trying headless browser...")
        try:
            page_html = await asyncio.wait_for(self._renderer(url), timeout=self.timeout_seconds)
            result = parse_rendered_page(page_html)
        except asyncio.TimeoutError:
            logger.warning(f"Browser render timed out after {self.timeout_seconds}s: {url}")
            return JobPostingResult.error(TIMED_OUT)
        except Exception as e:
            logger.error(f"Browser extraction failed: {e}")
            return JobPostingResult.error(RENDER_FAILED)

        if result.is_success:
            logger.info(
                f"Browser extraction successful: {result.job_title} at "
                f"{result.company_name}, {len(result.description)} chars"
            )
        return result

    async def fetch(self, url: str) -> JobPostingResult:
        """
        Fetch a job posting.

        Args:
            url: Absolute http(s) URL of the posting

        Returns:
            JobPostingResult; on failure ``is_success`` is False and
            ``error_message`` tells the user what to do
        """
        logger.info(f"Fetching job posting from URL: {url}")

        if not is_valid_url(url):
            return JobPostingResult.error(INVALID_URL)
        url = url.strip()

        static = await self._fetch_static(url)
        if static.is_success and len(static.description) > STATIC_DESCRIPTION_THRESHOLD:
            logger.info(f"Static extraction successful, got {len(static.description)} chars")
            return static

        if not self.use_browser:
            return static

        rendered = await self._fetch_rendered(url)
        if rendered.is_success:
            return rendered
        if static.is_success:
            return static
        return self._pick_error(static, rendered)

    @staticmethod
    def _pick_error(static: JobPostingResult, rendered: JobPostingResult) -> JobPostingResult:
        # A transport failure explains more than a generic render failure
        if static.error_message in (TIMED_OUT, CONNECTION_FAILED):
            return static
        return rendered
