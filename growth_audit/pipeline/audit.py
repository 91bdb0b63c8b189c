"""
Audit scoring engine — turns performance metrics and page signals into four
pillar scores (speed, SEO, conversion, trust), an overall score, ranked
findings and leak tags.

Every pillar starts at 100 and loses the score_delta of each non-green check.
Missing inputs (no measured metrics, page fetch failed) lower that pillar's
confidence instead of raising; the scores are always produced.
"""
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

from growth_audit.pipeline.metrics import Metrics, fetch_metrics, estimate_metrics
from growth_audit.pipeline.policy import section
from growth_audit.pipeline.signals import PageSignals, fetch_page_signals, empty_signals

logger = logging.getLogger('pipeline.audit')

PILLARS = ('speed', 'seo', 'conversion', 'trust')

PILLAR_LABELS = {
    'speed': 'Speed',
    'seo': 'Search visibility',
    'conversion': 'Conversion path',
    'trust': 'Trust layer',
}

LOCAL_INDUSTRY_RE = re.compile(r'local|service|trade|clinic|medical|dent|estate|beauty|legal')
SALES_GOAL_RE = re.compile(r'sales|checkout|order|revenue|pricing')

STATUS_WEIGHT = {'red': 3, 'amber': 2, 'green': 1}
IMPACT_WEIGHT = {'High': 3, 'Med': 2, 'Low': 1}


@dataclass
class Finding:
    id: str
    pillar: str
    label: str
    status: str          # red / amber / green
    score_delta: int
    evidence: str
    fix: str
    effort: str          # S / M / L
    impact: str          # Low / Med / High
    measured: bool = True

    def __post_init__(self):
        if self.status == 'green':
            self.score_delta = 0

    def to_dict(self):
        return asdict(self)


@dataclass
class AuditResult:
    url: str
    scores: Dict[str, int]
    confidence: Dict[str, float]
    checks: List[Finding]
    top_findings: List[Finding]
    leak_tags: List[str]
    narrative: Dict
    metrics: Metrics
    fetch_succeeded: bool = True
    rag: Dict[str, str] = field(default_factory=dict)

    def insights(self, limit=4):
        return [f'{finding.label}: {finding.evidence}' for finding in self.top_findings[:limit]]

    def to_dict(self):
        return {
            'url': self.url,
            'scores': dict(self.scores),
            'confidence': dict(self.confidence),
            'rag': dict(self.rag),
            'checks': [check.to_dict() for check in self.checks],
            'top_findings': [finding.to_dict() for finding in self.top_findings],
            'leak_tags': list(self.leak_tags),
            'narrative': dict(self.narrative),
            'metrics': self.metrics.to_dict(),
            'fetch_succeeded': self.fetch_succeeded,
        }


def _clamp(value, low, high):
    return max(low, min(high, value))


def rag(score: int) -> str:
    if score >= 80:
        return 'green'
    if score >= 50:
        return 'amber'
    return 'red'


def _grade(value, green_at, amber_at, higher_is_better=False):
    """red/amber/green for a value against two cut points."""
    if higher_is_better:
        if value >= green_at:
            return 'green'
        return 'amber' if value >= amber_at else 'red'
    if value <= green_at:
        return 'green'
    return 'amber' if value <= amber_at else 'red'


# ── Speed ────────────────────────────────────────────────────────────────────

def speed_heuristic(signals: PageSignals) -> int:
    """Estimated speed score from page weight signals (15-98)."""
    score = 86.0
    score -= max(0, signals.script_count - 10) * 1.8
    score -= max(0, signals.image_count - 24) * 0.65
    score -= max(0, signals.dom_elements - 900) / 28

    if signals.html_bytes > 250_000:
        score -= 5
    if signals.html_bytes > 420_000:
        score -= 6

    lazy_ratio = signals.lazy_image_count / signals.image_count if signals.image_count else 0
    if signals.image_count >= 18 and lazy_ratio < 0.35:
        score -= 8
    elif signals.image_count > 0 and lazy_ratio >= 0.35:
        score += 3

    score += 2 if signals.has_viewport_meta else -10

    if not signals.fetch_succeeded:
        score -= 22

    return int(_clamp(round(score), 15, 98))


def blended_speed_score(signals: PageSignals, metrics: Metrics) -> int:
    heuristic = speed_heuristic(signals)
    if not metrics.available or metrics.performance_score is None:
        return heuristic
    weight = section('audit')['measured_speed_weight']
    return int(_clamp(round(heuristic * (1 - weight) + metrics.performance_score * weight), 0, 100))


def _speed_checks(signals, metrics, speed_score):
    fetched = signals.fetch_succeeded
    if metrics.available:
        evidence = f'PageSpeed mobile performance {metrics.performance_score}/100'
        if metrics.lcp_ms:
            evidence += f', LCP {metrics.lcp_ms}ms'
        evidence += '.'
    else:
        evidence = f'Estimated score {speed_score}/100 from scripts, media and page complexity.'

    checks = [
        Finding('speed-score', 'speed', 'Page speed baseline',
                _grade(speed_score, 80, 55, higher_is_better=True),
                10 if speed_score >= 55 else 20, evidence,
                'Reduce script weight, compress images and simplify the critical page structure.',
                'M', 'High', measured=metrics.available),
        Finding('script-weight', 'speed', 'Script payload pressure',
                _grade(signals.script_count, 20, 35),
                8 if signals.script_count <= 35 else 14,
                f'{signals.script_count} script tags detected.',
                'Trim non-essential third-party scripts and defer non-critical JavaScript.',
                'M', 'High', measured=fetched),
        Finding('image-weight', 'speed', 'Media load pressure',
                _grade(signals.image_count, 40, 75),
                6 if signals.image_count <= 75 else 12,
                f'{signals.image_count} images detected, {signals.lazy_image_count} lazy-loaded.',
                'Serve optimised image formats and lazy-load non-critical media.',
                'M', 'Med', measured=fetched),
        Finding('viewport', 'speed', 'Mobile viewport setup',
                'green' if signals.has_viewport_meta else 'red', 10,
                'Viewport meta is present.' if signals.has_viewport_meta else 'Viewport meta tag not detected.',
                'Add a responsive viewport meta tag for mobile rendering.',
                'S', 'Med', measured=fetched),
    ]

    if metrics.lcp_ms:
        checks.append(Finding(
            'lcp', 'speed', 'Largest Contentful Paint', _grade(metrics.lcp_ms, 2500, 4000),
            5 if metrics.lcp_ms <= 4000 else 10, f'LCP {metrics.lcp_ms}ms (mobile).',
            'Improve server response, prioritise hero media and cut render-blocking assets.',
            'M', 'High'))
    if metrics.cls is not None:
        checks.append(Finding(
            'cls', 'speed', 'Layout stability (CLS)', _grade(metrics.cls, 0.1, 0.25),
            4 if metrics.cls <= 0.25 else 8, f'CLS {metrics.cls}.',
            'Reserve media dimensions and stabilise dynamically inserted content.',
            'S', 'Med'))
    if metrics.inp_ms:
        checks.append(Finding(
            'inp', 'speed', 'Interaction latency (INP)', _grade(metrics.inp_ms, 200, 500),
            4 if metrics.inp_ms <= 500 else 8, f'INP {metrics.inp_ms}ms.',
            'Break up long JavaScript tasks and simplify interaction handlers.',
            'M', 'Med'))
    return checks


# ── SEO ──────────────────────────────────────────────────────────────────────

def _seo_checks(signals):
    fetched = signals.fetch_succeeded
    title_len = signals.title_length
    meta_len = signals.meta_description_length
    og_fields = int(signals.has_og_title) + int(signals.has_og_description)

    if 30 <= title_len <= 60:
        title_status = 'green'
    else:
        title_status = 'amber' if title_len else 'red'
    if 120 <= meta_len <= 170:
        meta_status = 'green'
    else:
        meta_status = 'amber' if meta_len else 'red'
    if signals.h1_count == 1:
        h1_status = 'green'
    else:
        h1_status = 'amber' if signals.h1_count > 1 else 'red'

    checks = [
        Finding('title-length', 'seo', 'Title tag quality', title_status,
                6 if title_len else 12,
                f'{title_len} characters.' if title_len else 'No title text detected.',
                'Write a focused 30-60 character title carrying your core commercial intent.',
                'S', 'High', measured=fetched),
        Finding('meta-description', 'seo', 'Meta description coverage', meta_status,
                6 if meta_len else 12,
                f'{meta_len} characters.' if meta_len else 'No meta description detected.',
                'Add a 140-160 character value-focused description with a clear action cue.',
                'S', 'High', measured=fetched),
        Finding('canonical', 'seo', 'Canonical tag',
                'green' if signals.has_canonical else 'red', 10,
                'Canonical found.' if signals.has_canonical else 'Canonical missing.',
                'Set canonical URLs on indexable pages to avoid duplicate indexing signals.',
                'S', 'Med', measured=fetched),
        Finding('h1', 'seo', 'H1 structure', h1_status,
                5 if signals.h1_count > 1 else 10,
                'Single H1 detected.' if signals.h1_count == 1 else f'{signals.h1_count} H1 tags detected.',
                'Keep exactly one clear H1 aligned with the main buyer intent of the page.',
                'S', 'Med', measured=fetched),
        Finding('json-ld', 'seo', 'Structured data coverage',
                'green' if signals.json_ld_count else 'amber', 6,
                f'{signals.json_ld_count} JSON-LD scripts found.' if signals.json_ld_count
                else 'No JSON-LD scripts found.',
                'Add Organization/Service/FAQ schema where relevant.',
                'M', 'Med', measured=fetched),
        Finding('internal-links', 'seo', 'Internal linking depth',
                _grade(signals.internal_link_count, 10, 5, higher_is_better=True),
                5 if signals.internal_link_count >= 5 else 10,
                f'{signals.internal_link_count} internal links detected.',
                'Link service, industry and proof pages to your money pages.',
                'M', 'Med', measured=fetched),
        Finding('robots', 'seo', 'Robots directives',
                'green' if signals.has_robots_meta else 'amber', 4,
                'Robots meta present.' if signals.has_robots_meta else 'No robots meta detected.',
                'Set clear robots directives on key landing pages.',
                'S', 'Low', measured=fetched),
        Finding('social-preview', 'seo', 'Social preview metadata',
                'green' if og_fields == 2 else ('amber' if og_fields else 'red'),
                6 if og_fields else 12,
                {2: 'og:title and og:description detected.',
                 1: 'Only one Open Graph field detected.',
                 0: 'No Open Graph essentials detected.'}[og_fields],
                'Set Open Graph title and description for better share click-through.',
                'S', 'Med', measured=fetched),
        Finding('authority-baseline', 'seo', 'Authority baseline signals',
                'green' if signals.has_authority_baseline else 'amber', 5,
                f'External links {signals.external_link_count}, schema blocks {signals.json_ld_count}.'
                if signals.has_authority_baseline else 'No clear authority baseline signals detected.',
                'Add citations, partner mentions and structured organisation data.',
                'M', 'Med', measured=fetched),
    ]
    if not fetched:
        checks.append(Finding(
            'fetch-access', 'seo', 'Live fetch accessibility', 'amber', 8,
            f'Live fetch issue: {signals.fetch_error}.' if signals.fetch_error else 'Could not fetch page HTML.',
            'Make sure the homepage is publicly reachable over HTTPS and re-run the scan.',
            'S', 'High', measured=False))
    return checks


# ── Conversion ───────────────────────────────────────────────────────────────

def _conversion_checks(signals, local_like, sales_like):
    fetched = signals.fetch_succeeded
    has_capture = signals.has_form or signals.has_booking_hint or signals.has_tel_link
    return [
        Finding('cta-above-fold', 'conversion', 'Primary call-to-action clarity',
                'green' if signals.has_primary_cta else 'red', 14,
                'CTA language appears above the fold.' if signals.has_primary_cta
                else 'No clear primary CTA found in early page content.',
                'Lead the first screen with one action-focused CTA tied to your offer.',
                'S', 'High', measured=fetched),
        Finding('lead-capture', 'conversion', 'Lead capture path',
                'green' if has_capture else 'red', 14,
                'At least one direct capture path found (form, booking or click-to-call).' if has_capture
                else 'No direct lead capture mechanism detected.',
                'Add a visible form, booking action or one-tap call path on key pages.',
                'S', 'High', measured=fetched),
        Finding('booking-signal', 'conversion', 'Booking intent signal',
                'green' if signals.has_booking_hint else ('red' if sales_like else 'amber'),
                10 if sales_like else 6,
                'Booking/appointment cues detected.' if signals.has_booking_hint
                else 'No booking intent wording detected.',
                'Add booking language and urgency framing near service and pricing sections.',
                'S', 'High' if sales_like else 'Med', measured=fetched),
        Finding('click-to-call', 'conversion', 'Click-to-call on mobile',
                'green' if signals.has_tel_link else ('red' if local_like else 'amber'),
                10 if local_like else 5,
                'Telephone action link found.' if signals.has_tel_link else 'No click-to-call link detected.',
                'Add click-to-call and WhatsApp shortcuts for high-intent visitors.',
                'S', 'High' if local_like else 'Med', measured=fetched),
    ]


# ── Trust ────────────────────────────────────────────────────────────────────

def _trust_checks(signals, local_like):
    fetched = signals.fetch_succeeded
    contact_count = sum([signals.has_email_contact, signals.has_phone_contact, signals.has_address_signal])
    yes_no = {True: 'yes', False: 'no'}

    checks = [
        Finding('https', 'trust', 'HTTPS security',
                'green' if signals.is_https else 'red', 18,
                'Site URL is HTTPS.' if signals.is_https else 'Site URL is not HTTPS.',
                'Serve the site over HTTPS and redirect all HTTP traffic.',
                'S', 'High'),
        Finding('contact-trust', 'trust', 'Business contact trust signals',
                _grade(contact_count, 2, 1, higher_is_better=True),
                8 if contact_count == 1 else 14,
                f'Email {yes_no[signals.has_email_contact]}, phone {yes_no[signals.has_phone_contact]}, '
                f'address {yes_no[signals.has_address_signal]}.',
                'Show phone, email and location near conversion CTAs.',
                'S', 'High', measured=fetched),
        Finding('proof', 'trust', 'Review and proof content',
                'green' if signals.has_review_keywords else 'amber', 6,
                'Review/testimonial cues detected.' if signals.has_review_keywords
                else 'No clear review/testimonial cues detected.',
                'Add recent reviews and result-based proof near buying decisions.',
                'S', 'Med', measured=fetched),
        Finding('policies', 'trust', 'Policy and legal reassurance',
                'green' if signals.has_policy_links else 'amber', 4,
                'Policy/legal links detected.' if signals.has_policy_links
                else 'Policy/legal links not obvious in page source.',
                'Link privacy, terms and service policies from the footer and forms.',
                'S', 'Low', measured=fetched),
        Finding('favicon', 'trust', 'Brand identity cues',
                'green' if signals.has_favicon else 'amber', 3,
                'Favicon link present.' if signals.has_favicon else 'No favicon detected.',
                'Set a favicon and consistent brand marks.',
                'S', 'Low', measured=fetched),
        Finding('social-presence', 'trust', 'Social footprint',
                _grade(signals.social_count, 2, 1, higher_is_better=True),
                6 if signals.social_count == 1 else 10,
                f'{signals.social_count} social profile links detected.',
                'Link active social profiles to reinforce trust.',
                'S', 'Med', measured=fetched),
    ]
    if local_like:
        checks.append(Finding(
            'google-business', 'trust', 'Google Business visibility signal',
            'green' if signals.has_google_business_hint else 'amber', 6,
            'Google Maps/Business hint detected.' if signals.has_google_business_hint
            else 'No Google Business hint detected in page source.',
            'Connect and reference your Google Business Profile on local pages.',
            'S', 'Med', measured=fetched))
    return checks


# ── Aggregation ──────────────────────────────────────────────────────────────

def build_checks(signals: PageSignals, metrics: Metrics, context: Optional[dict] = None) -> List[Finding]:
    context = context or {}
    industry = (context.get('industry') or '').lower()
    goal = (context.get('goal') or '').lower()
    local_like = bool(LOCAL_INDUSTRY_RE.search(industry))
    sales_like = bool(SALES_GOAL_RE.search(goal))

    speed_score = blended_speed_score(signals, metrics)
    return (
        _speed_checks(signals, metrics, speed_score)
        + _seo_checks(signals)
        + _conversion_checks(signals, local_like, sales_like)
        + _trust_checks(signals, local_like)
    )


def pillar_scores(checks: List[Finding]) -> Dict[str, int]:
    scores = {pillar: 100 for pillar in PILLARS}
    for check in checks:
        if check.status != 'green':
            scores[check.pillar] -= check.score_delta
    return {pillar: int(_clamp(round(value), 0, 100)) for pillar, value in scores.items()}


def pillar_confidence(checks: List[Finding]) -> Dict[str, float]:
    """Share of each pillar's checks backed by measured data."""
    confidence = {}
    for pillar in PILLARS:
        pillar_checks = [check for check in checks if check.pillar == pillar]
        if not pillar_checks:
            confidence[pillar] = 0.0
            continue
        measured = sum(1 for check in pillar_checks if check.measured)
        confidence[pillar] = round(measured / len(pillar_checks), 2)
    return confidence


def overall_score(scores: Dict[str, int], weights: Optional[Dict[str, float]] = None) -> int:
    weights = weights or section('audit')['weights']
    total_weight = sum(weights.get(pillar, 0) for pillar in PILLARS)
    if total_weight <= 0:
        return round(sum(scores[pillar] for pillar in PILLARS) / len(PILLARS))
    weighted = sum(scores[pillar] * weights.get(pillar, 0) for pillar in PILLARS)
    return int(_clamp(round(weighted / total_weight), 0, 100))


def leak_tags(scores: Dict[str, int], cutoff: Optional[int] = None) -> List[str]:
    """Pillars under the cutoff, weakest first."""
    cutoff = section('audit')['leak_cutoff'] if cutoff is None else cutoff
    leaking = [pillar for pillar in PILLARS if scores[pillar] < cutoff]
    return sorted(leaking, key=lambda pillar: scores[pillar])


def rank_findings(checks: List[Finding], limit: int = 10) -> List[Finding]:
    issues = [check for check in checks if check.status != 'green']
    issues.sort(key=lambda c: (STATUS_WEIGHT[c.status], IMPACT_WEIGHT[c.impact], c.score_delta), reverse=True)
    return issues[:limit]


def build_narrative(scores: Dict[str, int], top_findings: List[Finding]) -> Dict:
    overall = scores['overall']
    weakest = sorted(PILLARS, key=lambda pillar: scores[pillar])
    first, second = PILLAR_LABELS[weakest[0]], PILLAR_LABELS[weakest[1]]

    if overall >= 80:
        summary = (f'Your website baseline is solid ({overall}/100), but there are still '
                   f'revenue gains available in {first} and {second}.')
    elif overall >= 55:
        summary = (f'Your website is currently leaking opportunities ({overall}/100). The biggest '
                   f'drag is {first.lower()}, followed by {second.lower()}.')
    else:
        summary = (f'Your website has critical commercial gaps ({overall}/100) that are likely '
                   f'suppressing leads and sales. Priority weaknesses are {first.lower()} '
                   f'and {second.lower()}.')

    critical = sum(1 for finding in top_findings if finding.status == 'red')
    if critical:
        why = (f'You currently have {critical} high-severity issues. When speed, trust or '
               f'conversion cues are weak, buyers leave and competitors capture the demand first.')
    else:
        why = ('The current gaps are mostly medium severity, but they still compound into lower '
               'lead quality and higher acquisition costs.')

    return {
        'executive_summary': summary,
        'why_it_matters': why,
        'next_steps': [f'{finding.label}: {finding.fix}' for finding in top_findings[:6]],
    }


def score_audit(url: str, context: Optional[dict] = None,
                metrics: Optional[Metrics] = None,
                signals: Optional[PageSignals] = None) -> AuditResult:
    """Score already-collected inputs. Missing inputs are treated as unavailable."""
    metrics = metrics or estimate_metrics()
    signals = signals or empty_signals(url, error='signals not collected')

    checks = build_checks(signals, metrics, context)
    scores = pillar_scores(checks)
    scores['overall'] = overall_score(scores)
    top = rank_findings(checks, limit=section('audit')['top_findings'])

    return AuditResult(
        url=url,
        scores=scores,
        confidence=pillar_confidence(checks),
        checks=checks,
        top_findings=top,
        leak_tags=leak_tags(scores),
        narrative=build_narrative(scores, top),
        metrics=metrics,
        fetch_succeeded=signals.fetch_succeeded,
        rag={name: rag(value) for name, value in scores.items()},
    )


def run_audit(url: str, context: Optional[dict] = None) -> AuditResult:
    """Collect metrics and page signals for url, then score them."""
    metrics = fetch_metrics(url)
    signals = fetch_page_signals(url)
    result = score_audit(url, context, metrics=metrics, signals=signals)
    logger.info("Audit %s: overall=%d leaks=%s", url, result.scores['overall'], result.leak_tags)
    return result
