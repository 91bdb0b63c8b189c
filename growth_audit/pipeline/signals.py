"""
Page signal collector — fetches a site's homepage HTML and extracts the
structural/content signals the audit checks are built from.

A failed fetch never raises: it yields an empty PageSignals with
fetch_succeeded=False and fetch_error set, and the audit degrades around it.
"""
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Dict, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from growth_audit.config import PAGE_FETCH_TIMEOUT_SECONDS, PAGE_MAX_BYTES, AUDIT_USER_AGENT

logger = logging.getLogger('pipeline.signals')

# Visible text considered "above the fold"
FOLD_CHARS = 1200

CHUNK_BYTES = 64 * 1024

EMAIL_RE = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.I)
PHONE_RE = re.compile(r'\+?\d[\d\s().-]{8,}\d')
ADDRESS_RE = re.compile(r'\b(?:street|st\.|road|rd\.|avenue|ave\.|postcode)\b', re.I)
REVIEW_RE = re.compile(r'\b(?:review|reviews|testimonial|rated|star rating|case study)\b', re.I)
POLICY_RE = re.compile(r'\bprivacy\b|\bterms\b|\bcookie|refund|returns|cancellation', re.I)
CTA_RE = re.compile(r'book now|get (?:a )?quote|get started|start free|talk to us|request (?:a )?demo|buy now|call now|contact us')
BOOKING_RE = re.compile(r'\b(?:book now|appointment|schedule|reserve|calendar)\b', re.I)
GOOGLE_BUSINESS_RE = re.compile(r'google\.com/maps|g\.page|google business profile|google my business', re.I)

SOCIAL_PATTERNS = {
    'facebook': r'facebook\.com',
    'instagram': r'instagram\.com',
    'linkedin': r'linkedin\.com',
    'tiktok': r'tiktok\.com',
    'youtube': r'youtube\.com|youtu\.be',
}


@dataclass
class PageSignals:
    url: str
    is_https: bool = False
    fetch_succeeded: bool = False
    fetch_error: Optional[str] = None
    html_bytes: int = 0
    title_text: str = ''
    h1_count: int = 0
    meta_description_length: int = 0
    has_canonical: bool = False
    has_robots_meta: bool = False
    has_og_title: bool = False
    has_og_description: bool = False
    json_ld_count: int = 0
    internal_link_count: int = 0
    external_link_count: int = 0
    script_count: int = 0
    image_count: int = 0
    lazy_image_count: int = 0
    dom_elements: int = 0
    has_viewport_meta: bool = False
    has_favicon: bool = False
    has_email_contact: bool = False
    has_phone_contact: bool = False
    has_address_signal: bool = False
    has_review_keywords: bool = False
    has_policy_links: bool = False
    has_primary_cta: bool = False
    has_form: bool = False
    has_booking_hint: bool = False
    has_tel_link: bool = False
    has_google_business_hint: bool = False
    social_links: Dict[str, bool] = field(default_factory=dict)

    @property
    def title_length(self):
        return len(self.title_text)

    @property
    def social_count(self):
        return sum(1 for present in self.social_links.values() if present)

    @property
    def has_authority_baseline(self):
        return self.external_link_count >= 3 or self.json_ld_count > 0 or self.has_review_keywords

    def to_dict(self):
        return asdict(self)


def _meta_content(soup, attr, value):
    tag = soup.find('meta', attrs={attr: re.compile(f'^{re.escape(value)}$', re.I)})
    return (tag.get('content') or '').strip() if tag else ''


def _has_rel(soup, pattern):
    for link in soup.find_all('link', rel=True):
        rel = link.get('rel')
        rel = ' '.join(rel) if isinstance(rel, list) else str(rel)
        if re.search(pattern, rel, re.I):
            return True
    return False


def parse_page_signals(url: str, html: str) -> PageSignals:
    """Extract signals from fetched HTML (pure; no network)."""
    soup = BeautifulSoup(html, 'html.parser')
    host = urlparse(url).hostname or ''

    internal = external = 0
    for a in soup.find_all('a', href=True):
        href = a['href'].strip()
        if not href or href.startswith('#') or href.lower().startswith(('javascript:', 'mailto:', 'tel:')):
            continue
        target = urlparse(urljoin(url, href)).hostname or ''
        if target == host:
            internal += 1
        else:
            external += 1

    images = soup.find_all('img')
    text = soup.get_text(' ', strip=True)
    hrefs = ' '.join(a['href'] for a in soup.find_all('a', href=True))
    searchable = f'{text} {hrefs}'

    return PageSignals(
        url=url,
        is_https=url.lower().startswith('https://'),
        fetch_succeeded=True,
        html_bytes=len(html.encode('utf-8')),
        title_text=soup.title.get_text(strip=True) if soup.title else '',
        h1_count=len(soup.find_all('h1')),
        meta_description_length=len(_meta_content(soup, 'name', 'description')),
        has_canonical=_has_rel(soup, r'\bcanonical\b'),
        has_robots_meta=bool(soup.find('meta', attrs={'name': re.compile('^robots$', re.I)})),
        has_og_title=bool(_meta_content(soup, 'property', 'og:title')),
        has_og_description=bool(_meta_content(soup, 'property', 'og:description')),
        json_ld_count=len(soup.find_all('script', attrs={'type': re.compile('application/ld\\+json', re.I)})),
        internal_link_count=internal,
        external_link_count=external,
        script_count=len(soup.find_all('script')),
        image_count=len(images),
        lazy_image_count=sum(1 for img in images if (img.get('loading') or '').lower() == 'lazy'),
        dom_elements=len(soup.find_all(True)),
        has_viewport_meta=bool(soup.find('meta', attrs={'name': re.compile('^viewport$', re.I)})),
        has_favicon=_has_rel(soup, r'icon'),
        has_email_contact=bool(soup.find('a', href=re.compile(r'^mailto:', re.I)) or EMAIL_RE.search(text)),
        has_phone_contact=bool(soup.find('a', href=re.compile(r'^tel:', re.I)) or PHONE_RE.search(text)),
        has_address_signal=bool(soup.find('address') or ADDRESS_RE.search(text)),
        has_review_keywords=bool(REVIEW_RE.search(text)),
        has_policy_links=bool(POLICY_RE.search(searchable)),
        has_primary_cta=bool(CTA_RE.search(text[:FOLD_CHARS].lower())),
        has_form=bool(soup.find('form')),
        has_booking_hint=bool(BOOKING_RE.search(text)),
        has_tel_link=bool(soup.find('a', href=re.compile(r'^tel:', re.I))),
        has_google_business_hint=bool(GOOGLE_BUSINESS_RE.search(searchable)),
        social_links={name: bool(re.search(pattern, hrefs, re.I)) for name, pattern in SOCIAL_PATTERNS.items()},
    )


def empty_signals(url: str, error: str = None) -> PageSignals:
    return PageSignals(
        url=url,
        is_https=url.lower().startswith('https://'),
        fetch_error=error,
        social_links={name: False for name in SOCIAL_PATTERNS},
    )


def _read_capped(resp, url, limit):
    """Decoded body, truncated to limit bytes; reading stops once they arrive."""
    chunks, size = [], 0
    for chunk in resp.iter_content(chunk_size=CHUNK_BYTES):
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    if size > limit:
        logger.info("Page %s larger than %d bytes; parsing the first %d", url, limit, limit)
    body = b''.join(chunks)[:limit]
    try:
        return body.decode(resp.encoding or 'utf-8', errors='replace')
    except LookupError:
        return body.decode('utf-8', errors='replace')


def fetch_page_signals(url: str, timeout: Optional[float] = None,
                       max_bytes: Optional[int] = None) -> PageSignals:
    """GET the page and parse it; empty signals on any fetch failure."""
    try:
        resp = requests.get(
            url,
            timeout=timeout or PAGE_FETCH_TIMEOUT_SECONDS,
            allow_redirects=True,
            stream=True,
            headers={
                'User-Agent': AUDIT_USER_AGENT,
                'Accept': 'text/html,application/xhtml+xml',
            },
        )
    except requests.RequestException as e:
        logger.warning("Page fetch failed for %s: %s", url, e)
        return empty_signals(url, error=str(e) or e.__class__.__name__)

    try:
        if not resp.ok:
            logger.warning("Page fetch for %s returned HTTP %d", url, resp.status_code)
            return empty_signals(url, error=f'HTTP {resp.status_code}')
        html = _read_capped(resp, url, max_bytes or PAGE_MAX_BYTES)
    except requests.RequestException as e:
        logger.warning("Page body read failed for %s: %s", url, e)
        return empty_signals(url, error=str(e) or e.__class__.__name__)
    finally:
        resp.close()

    return parse_page_signals(url, html)
