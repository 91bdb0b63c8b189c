"""
Growth simulator — what-if revenue projection from a handful of funnel inputs.

Pure: normalise_inputs() validates a raw payload, run_simulator() turns the
normalised inputs into readiness metrics, funnel stages, three uplift
scenarios and recommended modules. Persistence is the manager's job.
"""
import logging
import math
from typing import Dict, List, Optional
from urllib.parse import urlparse

from growth_audit.errors import ValidationError
from growth_audit.pipeline.recommend import recommend

logger = logging.getLogger('pipeline.simulator')

OFFER_TYPES = ('local-service', 'ecom', 'lead-gen', 'saas')
LOCATION_INTENTS = ('local', 'national', 'international')
GOALS = ('more-leads', 'more-bookings', 'more-sales', 'higher-aov', 'lower-cpl')

# Benchmarks by offer type, percent
DEFAULT_CONVERSION_RATE = {'local-service': 3.2, 'ecom': 1.8, 'lead-gen': 2.6, 'saas': 2.2}
DEFAULT_CLOSE_RATE = {'local-service': 34, 'ecom': 3.4, 'lead-gen': 23, 'saas': 19}

CAPTURE_POINTS = ('website_form', 'whatsapp', 'phone', 'booking_tool')
TRUST_SIGNALS = ('reviews', 'case_studies', 'guarantees', 'certifications')

SUMMARY_WEIGHTS = {
    'acquisition': 0.20,
    'conversion': 0.26,
    'speed_to_lead': 0.24,
    'trust_proof': 0.16,
    'retention': 0.14,
}

# (key, label, conversion uplift, close uplift, response improvement)
SCENARIOS = [
    ('conservative', 'Conservative', 0.09, 0.05, 0.24,
     'Stabilise weak stages first with low execution risk.'),
    ('realistic', 'Realistic', 0.16, 0.10, 0.45,
     'Most businesses with consistent implementation land in this range.'),
    ('aggressive', 'Aggressive', 0.27, 0.16, 0.62,
     'Requires decisive execution across offer, speed-to-lead, and follow-up.'),
]

METRIC_COPY = {
    'acquisition': ('Acquisition Readiness', 'SEO Upgrade Pack', '/services/seo-upgrade-pack',
                    'If traffic quality is weak, every downstream conversion metric is capped.'),
    'conversion': ('Conversion Readiness', 'Website Pro Build', '/services/website-pro-build',
                   'Small conversion improvements can materially increase monthly revenue.'),
    'speed_to_lead': ('Speed-to-Lead Readiness', 'Follow-up Automation', '/services/follow-up-automation',
                      'Speed wins. The first responder usually captures the booking.'),
    'trust_proof': ('Trust & Proof Readiness', 'Trust + Conversion Upgrade', '/services/website-pro-build',
                    'Trust reduces hesitation and improves close rates.'),
    'retention': ('Retention/Upsell Readiness', 'CRM Setup', '/services/crm-setup',
                  'Repeat revenue often has lower CAC and stronger margin.'),
}


def _round(value, precision=0):
    """Half-up rounding, so .5 always rounds away from zero for positive values."""
    factor = 10 ** precision
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if precision == 0 else result


def _clamp(value, low, high):
    return max(low, min(high, value))


def _number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _text(value, limit):
    return value.strip()[:limit] if isinstance(value, str) else ''


def normalise_inputs(payload: dict) -> dict:
    """Validate and normalise a raw simulator payload. Raises ValidationError."""
    payload = payload or {}
    visitors = _number(payload.get('visitors'))
    aov = _number(payload.get('avg_order_value'))
    response = _number(payload.get('response_time_minutes'))
    followups = _number(payload.get('followups'))

    if not visitors or visitors <= 0 or not aov or aov <= 0 or response is None or followups is None:
        raise ValidationError('Visitors, AOV, response time, and follow-up inputs are required.')

    offer_type = payload.get('offer_type') or 'local-service'
    if offer_type not in OFFER_TYPES:
        raise ValidationError(f'Unknown offer type: {offer_type}', field='offer_type')
    location = payload.get('location_intent') or 'local'
    if location not in LOCATION_INTENTS:
        raise ValidationError(f'Unknown location intent: {location}', field='location_intent')
    goal = payload.get('goal') or 'more-leads'
    if goal not in GOALS:
        raise ValidationError(f'Unknown goal: {goal}', field='goal')

    capture = payload.get('lead_capture_points') or {}
    trust = payload.get('trust_signals') or {}
    return {
        'domain': _text(payload.get('domain'), 200) or None,
        'business_name': _text(payload.get('business_name'), 160) or None,
        'industry': _text(payload.get('industry'), 100) or 'local services',
        'offer_type': offer_type,
        'location_intent': location,
        'goal': goal,
        'visitors': _round(visitors),
        'conversion_rate': _number(payload.get('conversion_rate')),
        'avg_order_value': max(1.0, aov),
        'close_rate': _number(payload.get('close_rate')),
        'gross_margin': _number(payload.get('gross_margin')),
        'response_time_minutes': max(1, _round(response)),
        'followups': _clamp(_round(followups), 0, 7),
        'lead_capture_points': {key: bool(capture.get(key)) for key in CAPTURE_POINTS},
        'trust_signals': {key: bool(trust.get(key)) for key in TRUST_SIGNALS},
        'currency': 'GBP',
    }


def domain_label(inputs: dict) -> str:
    if inputs.get('business_name'):
        return inputs['business_name']
    domain = (inputs.get('domain') or '').strip()
    if not domain:
        return 'your business'
    parsed = urlparse(domain if '://' in domain else f'https://{domain}')
    host = parsed.hostname or domain
    return host[4:] if host.startswith('www.') else host


def _resolve_rate(value, default, low, high):
    """(rate, was_default): the supplied rate clamped, or the benchmark."""
    if value is not None and value > 0:
        return _clamp(value, low, high), False
    return default, True


def stage_rag(score: int) -> str:
    if score >= 90:
        return 'green'
    if score >= 50:
        return 'amber'
    return 'red'


def metric_scores(inputs: dict, conversion_rate: float, close_rate: float) -> Dict[str, int]:
    """Five 0-100 readiness scores."""
    capture = inputs['lead_capture_points']
    trust = inputs['trust_signals']
    trust_count = sum(1 for present in trust.values() if present)
    capture_count = sum(1 for present in capture.values() if present)
    local = inputs['location_intent'] == 'local'
    goal = inputs['goal']

    visitors_score = _clamp(_round(math.log10(max(inputs['visitors'], 10)) * 18), 10, 38)
    acquisition = 40 + visitors_score + capture_count * 5
    if local and inputs['offer_type'] == 'local-service':
        acquisition += 8
    if goal in ('more-leads', 'lower-cpl'):
        acquisition += 4

    ratio = conversion_rate / DEFAULT_CONVERSION_RATE[inputs['offer_type']]
    conversion = 38 + _clamp(_round(ratio * 25), 0, 32) + _clamp(_round(close_rate * 0.28), 3, 24)
    if capture['booking_tool']:
        conversion += 6
    if goal in ('more-bookings', 'more-sales'):
        conversion += 5
    if inputs['response_time_minutes'] > 20:
        conversion -= 8

    speed = 94 - _round(inputs['response_time_minutes'] * 1.45) + inputs['followups'] * 5
    if capture['whatsapp']:
        speed += 5
    if capture['phone']:
        speed += 5
    if not capture['website_form'] and not capture['booking_tool']:
        speed -= 8

    trust_proof = 32 + trust_count * 15
    if capture['phone']:
        trust_proof += 5
    if local and trust['reviews']:
        trust_proof += 7

    retention = 30 + inputs['followups'] * 7 + trust_count * 4
    if goal == 'higher-aov':
        retention += 10
    if inputs['offer_type'] == 'saas':
        retention += 8

    scores = {
        'acquisition': acquisition,
        'conversion': conversion,
        'speed_to_lead': speed,
        'trust_proof': trust_proof,
        'retention': retention,
    }
    return {key: int(_clamp(_round(value), 0, 100)) for key, value in scores.items()}


def summary_score(scores: Dict[str, int]) -> int:
    weighted = sum(scores[key] * weight for key, weight in SUMMARY_WEIGHTS.items())
    return int(_clamp(_round(weighted), 0, 100))


def funnel_stages(scores: Dict[str, int]) -> List[dict]:
    rows = [
        ('traffic', 'Traffic', scores['acquisition']),
        ('lead', 'Lead', scores['conversion']),
        ('appointment', 'Appointment/Call', scores['speed_to_lead']),
        ('sale', 'Sale', _round((scores['conversion'] + scores['trust_proof']) / 2)),
        ('repeat', 'Repeat', scores['retention']),
    ]
    return [{'key': key, 'label': label, 'score': score, 'rag': stage_rag(score)}
            for key, label, score in rows]


def build_scenarios(inputs: dict, conversion_rate: float, close_rate: float,
                    baseline: dict, summary: int) -> List[dict]:
    deficit = (100 - summary) / 100
    response_pressure = _clamp((inputs['response_time_minutes'] - 5) / 45, 0, 1)

    scenarios = []
    for key, label, conv, close, speed, business_value in SCENARIOS:
        conversion_uplift = _round((conv + deficit * 0.12 + response_pressure * 0.06) * 100, 1)
        close_uplift = _round((close + deficit * 0.1) * 100, 1)
        response_improvement = _round((speed + deficit * 0.12) * 100, 1)

        leads = inputs['visitors'] * conversion_rate * (1 + conversion_uplift / 100) / 100
        sales = leads * close_rate * (1 + close_uplift / 100) / 100
        revenue = sales * inputs['avg_order_value']

        scenarios.append({
            'key': key,
            'label': label,
            'conversion_uplift_pct': conversion_uplift,
            'close_rate_uplift_pct': close_uplift,
            'response_time_improvement_pct': response_improvement,
            'projected_lead_delta': max(0, _round(leads - baseline['leads_per_month'])),
            'projected_sales_delta': max(0, _round(sales - baseline['sales_per_month'])),
            'projected_revenue_delta': max(0, _round(revenue - baseline['revenue_per_month'])),
            'business_value': business_value,
        })
    return scenarios


def run_simulator(inputs: dict) -> dict:
    """
    Project baseline and uplift scenarios for normalised inputs.

    Returns {'inputs': inputs with resolved rates, 'outputs': {...}}.
    """
    label = domain_label(inputs)
    conversion_rate, conversion_default = _resolve_rate(
        inputs.get('conversion_rate'), DEFAULT_CONVERSION_RATE[inputs['offer_type']], 0.2, 80)
    close_rate, close_default = _resolve_rate(
        inputs.get('close_rate'), DEFAULT_CLOSE_RATE[inputs['offer_type']], 0.2, 95)
    margin = inputs.get('gross_margin')
    margin = _clamp(margin, 5, 95) if margin is not None and margin > 0 else None

    leads = _round(inputs['visitors'] * conversion_rate / 100)
    sales = _round(leads * close_rate / 100)
    revenue = _round(sales * inputs['avg_order_value'])
    baseline = {
        'leads_per_month': leads,
        'sales_per_month': sales,
        'revenue_per_month': revenue,
        'profit_per_month': _round(revenue * margin / 100) if margin is not None else None,
    }

    scores = metric_scores(inputs, conversion_rate, close_rate)
    summary = summary_score(scores)
    metrics = []
    for key, score in scores.items():
        title, fix_label, fix_href, why = METRIC_COPY[key]
        metrics.append({
            'key': key,
            'label': title,
            'score': score,
            'rag': stage_rag(score),
            'why_it_matters': why,
            'what_it_means': f'On {label}, this is how ready your {title.lower()} layer is.',
            'fix_module': {'label': fix_label, 'href': fix_href},
        })

    stages = funnel_stages(scores)
    weakest = min(stages, key=lambda stage: stage['score'])

    cards = recommend(
        {'speed': scores['speed_to_lead'], 'seo': scores['acquisition'],
         'conversion': scores['conversion'], 'trust': scores['trust_proof']},
        [weakest['key'], inputs['goal']],
        inputs['industry'], inputs['goal'],
    )

    defaults_used = [name for name, used in (
        ('conversion rate', conversion_default),
        ('close rate', close_default),
        ('gross margin', margin is None),
    ) if used]

    outputs = {
        'assumptions': {
            'conversion_rate_was_default': conversion_default,
            'close_rate_was_default': close_default,
            'gross_margin_was_default': margin is None,
            'defaults_used': defaults_used,
        },
        'baseline': baseline,
        'summary_score': summary,
        'metrics': metrics,
        'scenarios': build_scenarios(inputs, conversion_rate, close_rate, baseline, summary),
        'funnel': {
            'stages': stages,
            'weakest_stage': weakest,
            'explanation': [
                f"{weakest['label']} is currently the weakest stage in your funnel.",
                'This stage is creating avoidable leakage before revenue is captured.',
                'Fixing this first usually produces the fastest measurable uplift.',
            ],
        },
        'recommended_modules': [
            {'key': card.key, 'title': card.title, 'href': card.href} for card in cards
        ],
    }
    logger.debug("Simulated %s: summary=%d weakest=%s", label, summary, weakest['key'])
    return {
        'inputs': dict(inputs, conversion_rate=conversion_rate, close_rate=close_rate, gross_margin=margin),
        'outputs': outputs,
    }
