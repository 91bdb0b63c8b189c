"""
Lead priority scoring — 0-100 buying-intent score from a lead's history.

Pure read: completed audits, simulator runs, activity events and the latest
generated message are turned into additive point signals, each with a
human-readable reason. Writing the score back is the manager's job.

Every point value, cap and threshold comes from the lead_score policy section.
"""
import logging
import re
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional

from growth_audit.config import COMPLETED, SYSTEM_EVENT_TYPES
from growth_audit.database import parse_datetime
from growth_audit.pipeline.followup import format_currency
from growth_audit.pipeline.policy import section, categorise_score
from growth_audit.services.repository import Repository, utcnow

logger = logging.getLogger('pipeline.lead_score')

AMOUNT_RE = re.compile(r'\d[\d,]*')


@dataclass
class LeadScore:
    lead_id: str
    score: int
    category: str
    reasons: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


def _plural(count, noun):
    return f"{count} {noun}{'s' if count != 1 else ''}"


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def highest_amount(text: str) -> Optional[float]:
    """Largest number in free text like "£1,500-£4,200 monthly upside"."""
    numbers = [float(match.replace(',', '')) for match in AMOUNT_RE.findall(text or '')]
    return max(numbers) if numbers else None


def scenario_revenue_gain(simulation: Optional[dict]) -> float:
    """Best positive projected revenue delta of a simulator run, or 0."""
    outputs = (simulation or {}).get('outputs') or {}
    deltas = [
        _as_number(scenario.get('projected_revenue_delta'))
        for scenario in outputs.get('scenarios') or []
        if isinstance(scenario, dict)
    ]
    deltas = [delta for delta in deltas if delta is not None and delta > 0]
    return max(deltas) if deltas else 0


def _stepped(count, cfg):
    """first + each_additional per extra item, capped."""
    return min(cfg['cap'], cfg['first'] + (count - 1) * cfg['each_additional'])


def _revenue_points(gain, tiers):
    for tier in tiers:
        if gain >= tier['min'] and gain > 0:
            return tier['points']
    return 0


def _latest_per_report(audits):
    """Re-runs of a report count once; audits arrive newest first."""
    seen = set()
    latest = []
    for audit in audits:
        if audit.get('report_id') not in seen:
            seen.add(audit.get('report_id'))
            latest.append(audit)
    return latest


def _day(value):
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def score_lead(lead_id: str, repository: Repository,
               now: Optional[datetime] = None) -> LeadScore:
    """Compute (but do not store) the lead's score. Raises NotFoundError."""
    cfg = section('lead_score')
    lookback = cfg['lookback']
    now = now or utcnow()

    lead = repository.require('lead', lead_id)
    audits = _latest_per_report(repository.recent(
        'audit_run', lead_id=lead_id, limit=lookback['audit_runs'], status=COMPLETED,
    ))
    simulations = repository.recent('simulator_run', lead_id=lead_id,
                                    limit=lookback['simulator_runs'])
    events = [
        event for event in repository.recent('event', lead_id=lead_id, limit=lookback['events'])
        if event['type'] not in SYSTEM_EVENT_TYPES
    ]
    message = repository.find_one('generated_message', lead_id=lead_id)

    signals = []  # (points, reason)

    if audits:
        points = _stepped(len(audits), cfg['audit_runs'])
        signals.append((points, f"{_plural(len(audits), 'audit run')} completed (+{points})"))
    else:
        signals.append((0, 'No completed audit run yet (+0)'))

    if simulations:
        points = _stepped(len(simulations), cfg['simulator_runs'])
        signals.append((points, f"{_plural(len(simulations), 'simulator run')} completed (+{points})"))

    pdfs = sum(1 for event in events if event['type'] == 'pdf_downloaded')
    if pdfs:
        points = min(cfg['pdf_downloads']['cap'], pdfs * cfg['pdf_downloads']['each'])
        signals.append((points, f"{_plural(pdfs, 'PDF download')} (+{points})"))

    clicks = sum(1 for event in events if event['type'] == 'module_clicked')
    if clicks:
        points = min(cfg['module_clicks']['cap'], clicks * cfg['module_clicks']['each'])
        signals.append((points, f"{_plural(clicks, 'module click')} (+{points})"))

    days = {_day(row.get('created_at')) for row in events + audits + simulations}
    days.discard(None)
    repeats = max(0, len(days) - 1)
    if repeats:
        points = min(cfg['repeat_days']['cap'], repeats * cfg['repeat_days']['each'])
        signals.append((points, f"{_plural(repeats, 'repeat visit signal')} (+{points})"))

    latest_simulation = simulations[0] if simulations else None
    gain = scenario_revenue_gain(latest_simulation)
    if not gain and message:
        gain = highest_amount(message.get('estimated_revenue_gain')) or 0
    if gain > 0:
        points = _revenue_points(gain, cfg['revenue_tiers'])
        signals.append((points, f"estimated revenue gain around {format_currency(gain)} (+{points})"))

    size = cfg['business_size']
    size_points = 0
    if latest_simulation:
        if (latest_simulation.get('visitors') or 0) >= size['visitors_min']:
            size_points += size['visitors_points']
        if (latest_simulation.get('avg_order_value') or 0) >= size['aov_min']:
            size_points += size['aov_points']
    if len((lead.get('business_name') or '').strip()) >= 3:
        size_points += size['business_name_points']
    if lead.get('website_url'):
        size_points += size['website_points']
    if size_points:
        points = min(size['cap'], size_points)
        signals.append((points, f'business size and data richness signals (+{points})'))

    urgency = cfg['urgency']
    urgency_text = ((message or {}).get('urgency_factor') or '').lower()
    overall = _as_number(((audits[0] if audits else {}).get('scores') or {}).get('overall'))
    if 'high urgency' in urgency_text:
        points = urgency['high']
    elif 'medium urgency' in urgency_text:
        points = urgency['medium']
    elif 'focused urgency' in urgency_text:
        points = urgency['focused']
    elif overall is not None:
        if overall < urgency['audit_high_below']:
            points = urgency['high']
        elif overall < urgency['audit_medium_below']:
            points = urgency['medium']
        else:
            points = urgency['focused']
    else:
        points = 0
    if points:
        signals.append((points, f'urgency factor indicates active buying window (+{points})'))

    recency = cfg['recency']
    last_seen = parse_datetime(lead.get('last_seen_at') or lead.get('updated_at'))
    if last_seen is not None:
        days_since = (now - last_seen).days
        if days_since <= recency['days_short']:
            points = recency['points_short']
            signals.append((points, f'recent activity in last {recency["days_short"] * 24} hours (+{points})'))
        elif days_since <= recency['days_long']:
            points = recency['points_long']
            signals.append((points, f'active in last {recency["days_long"]} days (+{points})'))

    score = int(max(0, min(100, round(sum(points for points, _ in signals)))))
    # sorted() is stable, so equal points keep signal order
    ranked = sorted(signals, key=lambda signal: signal[0], reverse=True)
    reasons = [reason for _, reason in ranked[:cfg['max_reasons']]]

    result = LeadScore(lead_id=lead_id, score=score, category=categorise_score(score), reasons=reasons)
    logger.info("Lead %s scored %d (%s)", lead_id, score, result.category, extra={'lead_id': lead_id})
    return result
