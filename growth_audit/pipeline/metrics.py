"""
Performance metrics adapter — Google PageSpeed Insights (mobile).

fetch_metrics() never raises: no API key, an open circuit, a timeout, a
non-2xx answer or a payload without a performance score all produce the
estimate result (available=False, mode="estimate", cwv_status="Estimated").
"""
import logging
import math
from dataclasses import dataclass, asdict
from typing import Optional

import requests

from growth_audit.config import (
    PAGESPEED_API_KEY, PAGESPEED_API_URL, METRICS_TIMEOUT_SECONDS, AUDIT_USER_AGENT,
)
from growth_audit.services.circuit_breaker import get_breaker, CircuitOpenError

logger = logging.getLogger('pipeline.metrics')

PSI_CATEGORIES = ('performance', 'seo', 'accessibility', 'best-practices')

# Core Web Vitals thresholds: (good, poor)
LCP_MS = (2500, 4000)
CLS = (0.1, 0.25)
INP_MS = (200, 500)


@dataclass
class Metrics:
    available: bool = False
    mode: str = 'estimate'           # measured / estimate
    cwv_status: str = 'Estimated'    # Pass / Needs Improvement / Fail / Estimated
    performance_score: Optional[int] = None
    seo_score: Optional[int] = None
    accessibility_score: Optional[int] = None
    best_practices_score: Optional[int] = None
    fcp_ms: Optional[int] = None
    lcp_ms: Optional[int] = None
    tbt_ms: Optional[int] = None
    speed_index_ms: Optional[int] = None
    inp_ms: Optional[int] = None
    cls: Optional[float] = None

    def to_dict(self):
        return asdict(self)


def estimate_metrics() -> Metrics:
    return Metrics()


def infer_cwv_status(lcp_ms, cls, inp_ms) -> str:
    """Qualitative Core Web Vitals verdict from LCP, CLS and INP."""
    if lcp_ms is None or cls is None or inp_ms is None:
        return 'Estimated'
    if lcp_ms > LCP_MS[1] or cls > CLS[1] or inp_ms > INP_MS[1]:
        return 'Fail'
    if lcp_ms <= LCP_MS[0] and cls <= CLS[0] and inp_ms <= INP_MS[0]:
        return 'Pass'
    return 'Needs Improvement'


def _as_dict(value):
    return value if isinstance(value, dict) else {}


def _finite(value):
    """value when it is a real, finite number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def _category_score(categories, name):
    value = _finite(_as_dict(categories.get(name)).get('score'))
    if value is None:
        return None
    return round(max(0, min(100, value * 100)))


def _numeric(audits, name):
    return _finite(_as_dict(audits.get(name)).get('numericValue'))


def _field_inp(payload):
    """Field-data INP percentile when the lab run has no INP audit."""
    experience = _as_dict(payload.get('loadingExperience'))
    metric = _as_dict(_as_dict(experience.get('metrics')).get('INTERACTION_TO_NEXT_PAINT'))
    return _finite(metric.get('percentile'))


def parse_pagespeed(payload) -> Optional[Metrics]:
    """Normalise a PSI v5 payload; None when it carries no performance score."""
    if not isinstance(payload, dict):
        return None
    lighthouse = _as_dict(payload.get('lighthouseResult'))
    categories = _as_dict(lighthouse.get('categories'))
    audits = _as_dict(lighthouse.get('audits'))

    performance = _category_score(categories, 'performance')
    if performance is None:
        return None

    def rounded(name):
        value = _numeric(audits, name)
        return round(value) if value is not None else None

    inp = _numeric(audits, 'interaction-to-next-paint')
    if inp is None:
        inp = _field_inp(payload)
    cls = _numeric(audits, 'cumulative-layout-shift')

    metrics = Metrics(
        available=True,
        mode='measured',
        performance_score=performance,
        seo_score=_category_score(categories, 'seo'),
        accessibility_score=_category_score(categories, 'accessibility'),
        best_practices_score=_category_score(categories, 'best-practices'),
        fcp_ms=rounded('first-contentful-paint'),
        lcp_ms=rounded('largest-contentful-paint'),
        tbt_ms=rounded('total-blocking-time'),
        speed_index_ms=rounded('speed-index'),
        inp_ms=round(inp) if inp is not None else None,
        cls=round(cls, 3) if cls is not None else None,
    )
    metrics.cwv_status = infer_cwv_status(metrics.lcp_ms, metrics.cls, metrics.inp_ms)
    return metrics


def _request_pagespeed(url, api_key, timeout):
    params = [('url', url), ('strategy', 'mobile')]
    params += [('category', category) for category in PSI_CATEGORIES]
    params.append(('key', api_key))

    resp = requests.get(
        PAGESPEED_API_URL,
        params=params,
        timeout=timeout,
        headers={'User-Agent': AUDIT_USER_AGENT},
    )
    # Only server-side errors count against the breaker; a 4xx is about this URL
    if resp.status_code >= 500:
        resp.raise_for_status()
    if not resp.ok:
        logger.warning("PageSpeed returned HTTP %d for %s", resp.status_code, url)
        return None
    return resp.json()


def fetch_metrics(url: str, api_key: Optional[str] = None,
                  timeout: Optional[float] = None) -> Metrics:
    """Measured metrics for url, or the estimate result on any failure."""
    api_key = api_key or PAGESPEED_API_KEY
    if not api_key:
        logger.info("PAGESPEED_API_KEY not set — using estimate mode")
        return estimate_metrics()

    try:
        payload = get_breaker('pagespeed').call(
            _request_pagespeed, url, api_key, timeout or METRICS_TIMEOUT_SECONDS,
        )
    except CircuitOpenError as e:
        logger.warning("PageSpeed skipped: %s", e)
        return estimate_metrics()
    except (requests.RequestException, ValueError) as e:
        logger.warning("PageSpeed request failed for %s: %s", url, e)
        return estimate_metrics()

    metrics = parse_pagespeed(payload)
    if metrics is None:
        if payload is not None:
            logger.warning("PageSpeed payload for %s had no performance score", url)
        return estimate_metrics()

    logger.info("PageSpeed %s: performance=%s cwv=%s",
                url, metrics.performance_score, metrics.cwv_status)
    return metrics
