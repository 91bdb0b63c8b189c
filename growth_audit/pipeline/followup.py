"""
Follow-up generator — templated multi-channel outreach from a lead's latest
audit and simulation.

build_follow_up() is pure: it returns the GeneratedMessage fields (email,
WhatsApp, SMS, call script plus the facts they quote). The caller persists it.
"""
import logging
from typing import List, Optional
from urllib.parse import quote, urlparse

from growth_audit.config import PUBLIC_BASE_URL, BRAND_NAME
from growth_audit.pipeline.policy import section

logger = logging.getLogger('pipeline.followup')


def format_currency(value) -> str:
    return f'£{max(0, round(value)):,}'


def to_domain(url: Optional[str]) -> str:
    """Bare hostname for display; "your site" when there is nothing usable."""
    value = (url or '').strip()
    if not value:
        return 'your site'
    parsed = urlparse(value if '://' in value else f'https://{value}')
    host = parsed.hostname
    if not host:
        return value
    return host[4:] if host.startswith('www.') else host


def _number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def top_findings(audit: Optional[dict], filler: str) -> List[str]:
    """Exactly three finding labels, padded with filler."""
    snapshot = (audit or {}).get('snapshot') or {}
    labels = []
    for finding in snapshot.get('top_findings') or []:
        if not isinstance(finding, dict):
            continue
        label = (finding.get('label') or '').strip() or (finding.get('fix') or '').strip()
        if label:
            labels.append(label)
    labels = labels[:3]
    while len(labels) < 3:
        labels.append(filler)
    return labels


def overall_from_context(audit: Optional[dict], simulation: Optional[dict], default: int) -> float:
    overall = _number(((audit or {}).get('scores') or {}).get('overall'))
    if overall is not None:
        return overall
    summary = _number(((simulation or {}).get('outputs') or {}).get('summary_score'))
    if summary is not None:
        return summary
    return default


def urgency_factor(overall: float) -> str:
    if overall < 50:
        return 'High urgency: revenue is leaking weekly and delay compounds lost bookings.'
    if overall < 75:
        return ('Medium urgency: meaningful gains are available now, but delay lets '
                'competitors pull ahead.')
    return ('Focused urgency: performance is solid, but quick optimisation captures extra '
            'margin before demand shifts.')


def revenue_gain(simulation: Optional[dict], overall: float, fallback_ranges: List[dict]) -> str:
    """Monthly upside range from scenario deltas, else a range keyed off the score."""
    scenarios = ((simulation or {}).get('outputs') or {}).get('scenarios') or []
    deltas = [
        _number(scenario.get('projected_revenue_delta'))
        for scenario in scenarios if isinstance(scenario, dict)
    ]
    deltas = [delta for delta in deltas if delta is not None and delta > 0]
    if len(deltas) >= 2:
        low, high = min(deltas), max(deltas)
    else:
        band = next((band for band in fallback_ranges if overall < band['below']), fallback_ranges[-1])
        low, high = band['low'], band['high']
    return f'{format_currency(low)}-{format_currency(high)} monthly upside'


def weakest_stage(simulation: Optional[dict], findings: List[str]) -> str:
    funnel = ((simulation or {}).get('outputs') or {}).get('funnel') or {}
    label = ((funnel.get('weakest_stage') or {}).get('label') or '').strip()
    if label:
        return label

    joined = ' '.join(findings).lower()
    if any(word in joined for word in ('speed', 'response', 'follow-up')):
        return 'Speed to lead'
    if any(word in joined for word in ('offer', 'cta', 'conversion')):
        return 'Conversion'
    if any(word in joined for word in ('seo', 'search')):
        return 'Acquisition'
    return 'Lead qualification'


def build_follow_up(lead: dict, latest_audit: Optional[dict] = None,
                    latest_simulation: Optional[dict] = None) -> dict:
    """GeneratedMessage fields for one lead (no id, no timestamps)."""
    cfg = section('followup')
    website = lead.get('website_url') or (latest_audit or {}).get('url') or ''
    domain = to_domain(website)
    name = ((lead.get('full_name') or '').strip() or 'there').split(' ')[0]

    findings = top_findings(latest_audit, cfg['filler_finding'])
    overall = overall_from_context(latest_audit, latest_simulation, cfg['default_overall_score'])
    gain = revenue_gain(latest_simulation, overall, cfg['fallback_ranges'])
    stage = weakest_stage(latest_simulation, findings)
    urgency = urgency_factor(overall)

    findings_line = '; '.join(findings)
    plan_url = (f"{PUBLIC_BASE_URL}/bespoke-plan?leadId={quote(lead['id'], safe='')}"
                f"&domain={quote(domain, safe='')}")
    report_url = f"{PUBLIC_BASE_URL}/tools/website-audit/results?url={quote(website or domain, safe='')}"

    email = '\n'.join([
        f'Subject: {domain} growth follow-up: {gain}',
        '',
        f'Hi {name},',
        '',
        f'We reviewed {domain}. The weakest funnel stage right now is {stage}.',
        f'Top 3 blockers: {findings_line}.',
        f'Estimated gain available: {gain}.',
        urgency,
        '',
        'If you want, we can deploy the fixes in priority order and track recovery week by week.',
        f'Done-for-you plan: {plan_url}',
        f'Re-open your report: {report_url}',
    ])

    whatsapp = '\n'.join([
        f'Hi {name}, quick update on {domain}.',
        f'Weakest stage: {stage}.',
        f'Top blockers: {findings_line}.',
        f'Estimated upside: {gain}.',
        urgency,
        f'Want us to implement this for you? {plan_url}',
    ])

    sms = ' '.join([
        f'{domain}: weakest stage is {stage}.',
        f'Top issues: {", ".join(findings)}.',
        f'Estimated gain {gain}.',
        f"{urgency.split(':')[0]}.",
        f'Plan: {plan_url}',
    ])

    call_script = '\n'.join([
        f'1) Open: "Hi {name}, this is {BRAND_NAME}. We reviewed {domain} and found where revenue is leaking."',
        f'2) Diagnose: "Your weakest funnel stage is {stage}. We flagged 3 issues: {findings_line}."',
        f'3) Commercial impact: "This is likely worth {gain} if fixed in order."',
        f'4) Urgency: "{urgency}"',
        '5) Close: "Would you like us to deploy the fixes done-for-you this week?"',
        f'6) Link for confirmation: {plan_url}',
    ])

    return {
        'lead_id': lead['id'],
        'audit_run_id': (latest_audit or {}).get('id'),
        'simulator_run_id': (latest_simulation or {}).get('id'),
        'domain': domain,
        'weakest_funnel_stage': stage,
        'top_findings': findings,
        'estimated_revenue_gain': gain,
        'urgency_factor': urgency,
        'email_version': email,
        'whatsapp_version': whatsapp,
        'sms_version': sms,
        'call_script_version': call_script,
    }
