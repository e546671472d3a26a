import re
from urllib.parse import urljoin

import requests
import structlog
from bs4 import BeautifulSoup

from config import settings
from errors import CaptureError, CollectorError

logger = structlog.get_logger()

HEADERS = {"User-Agent": "SketchViewTracker/0.1", "Accept": "application/json, text/html;q=0.9"}

TITLE_SELECTOR = ".sketchHeader, .sketchLabel h1, .sketchLabel h2, .sketchLabel h3, h1, h2, h3, h4"
CARD_TAGS = {"article", "li"}
CARD_CLASSES = {"sketchThumbContainer", "sketchThumb", "card", "sketch", "gallery-item"}


def _raise_for_response(response, url):
    if response.ok:
        return
    server = response.headers.get("server", "").lower()
    body = (response.text or "").lower()
    if response.status_code == 403 and "cloudflare" in server and (
        "sorry, you have been blocked" in body or "attention required" in body
    ):
        raise CollectorError(f"HTTP 403 fetching {url}: the site returned a Cloudflare block page.")
    raise CollectorError(f"HTTP {response.status_code} fetching {url}")


def _get(url, **params):
    try:
        r = requests.get(url, headers=HEADERS, params=params or None, timeout=settings.request_timeout)
    except requests.RequestException as e:
        logger.warning("collector_error", url=url, error=str(e))
        raise CollectorError(f"Failed to fetch {url}: {e}") from e
    _raise_for_response(r, url)
    return r


def to_number(text) -> int:
    digits = re.sub(r"[^\d]", "", str(text or ""))
    return int(digits) if digits else 0


def extract_sketch_id(url):
    if not url:
        return None
    m = re.search(r"/sketch/(\d+)", url, re.IGNORECASE)
    if m:
        return int(m.group(1))
    m = re.search(r"[?&]visualID=(\d+)", url, re.IGNORECASE)
    if m:
        return int(m.group(1))
    return None


def parse_title(raw_title) -> str:
    raw = str(raw_title or "")
    trailing_views = re.match(r"^(.*?)(?:\s{2,}|\n+)(\d[\d\s,.]*)$", raw, re.DOTALL)
    if trailing_views:
        raw = trailing_views.group(1)
    return re.sub(r"\s+", " ", raw).strip()


def _find_card(link):
    for parent in link.parents:
        if parent.name in CARD_TAGS:
            return parent
        if CARD_CLASSES.intersection(parent.get("class") or []):
            return parent
    return link


def parse_sketch_page(html, base_url):
    """Harvest ``{id, title, views, url}`` records from a sketch list page."""
    soup = BeautifulSoup(html or "", "html.parser")
    by_id = {}
    for link in soup.find_all("a", href=True):
        href = link["href"]
        if not re.search(r"(^/sketch/|openprocessing\.org/sketch/)", href):
            continue
        if re.search(r"/sketch/create/?$", href, re.IGNORECASE):
            continue
        url = urljoin(base_url, href)
        sketch_id = extract_sketch_id(url)
        if sketch_id is None or sketch_id in by_id:
            continue

        card = _find_card(link)
        heading = card.select_one(TITLE_SELECTOR)
        title = parse_title(heading.get_text() if heading else link.get_text())
        views_el = card.select_one(".sketchMeta .views, .views")
        views = to_number(views_el.get_text()) if views_el else 0

        by_id[sketch_id] = {"id": sketch_id, "title": title, "views": views, "url": url}

    return sorted(by_id.values(), key=lambda s: s["views"], reverse=True)


def check_page_url(url):
    if not url or not url.startswith(settings.site_url):
        raise CaptureError(f"Open an {settings.site_url.split('//')[-1].rstrip('/')} page first.")


def scrape_page(url):
    check_page_url(url)
    r = _get(url)
    sketches = parse_sketch_page(r.text, url)
    logger.info("page_scraped", url=url, sketches=len(sketches))
    return sketches


def map_api_sketch(sketch):
    sketch_id = sketch.get("visualID")
    record = {
        "id": sketch_id,
        "title": str(sketch.get("title") or ""),
        "views": sketch.get("views") or 0,
    }
    if sketch_id is not None:
        record["url"] = urljoin(settings.site_url, f"sketch/{sketch_id}")
    return record


def fetch_sketch_page(user_id, offset):
    url = f"{settings.api_base}/sketch"
    r = _get(url, userID=user_id, limit=settings.page_limit, offset=offset, isPublic=1)
    try:
        return r.json()
    except ValueError as e:
        raise CollectorError(f"Invalid JSON from {url}") from e


def fetch_user_sketches(user_id):
    sketches = []
    offset = 0
    while True:
        page = fetch_sketch_page(user_id, offset)
        if not isinstance(page, list):
            raise CollectorError("Unexpected API response: expected a list of sketches.")
        if not page:
            break
        sketches.extend(page)
        if len(page) < settings.page_limit:
            break
        offset += settings.page_limit
    logger.info("user_sketches_fetched", user_id=user_id, sketches=len(sketches))
    return [map_api_sketch(s) for s in sketches]
