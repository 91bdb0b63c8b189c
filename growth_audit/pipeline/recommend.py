"""
Module recommendation engine — ranks the remediation catalogue into a short,
phased action plan (always 4-6 cards).

Independent rules each add (module key, priority, rationale) candidates; a
module named by several rules keeps its highest priority. Phase is assigned
purely from the card's position in the final ordering.
"""
import logging
import re
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional

from growth_audit.pipeline.policy import section

logger = logging.getLogger('pipeline.recommend')

ECOM_RE = re.compile(r'ecom|e-commerce|shop|store|retail|d2c')
LOCAL_RE = re.compile(r'local|service|trade|clinic|medical|dent|estate|beauty|plumb|electric')
LEADS_GOAL_RE = re.compile(r'lead|enquir|inbound|contact')
SALES_GOAL_RE = re.compile(r'sale|sales|checkout|order|revenue|pricing')


@dataclass(frozen=True)
class ModuleDefinition:
    key: str
    title: str
    slug: Optional[str]
    default_why: str
    default_action: str
    price_label: Optional[str] = None
    fallback_href: str = '/services'

    @property
    def href(self):
        return f'/services/{self.slug}' if self.slug else self.fallback_href


@dataclass
class ModuleCard:
    key: str
    title: str
    why: str
    action: str
    href: str
    price_label: str
    phase: str
    priority: int

    def to_dict(self):
        return asdict(self)


MODULE_CATALOGUE: Dict[str, ModuleDefinition] = {m.key: m for m in [
    ModuleDefinition(
        'website_starter', 'Website Starter Build', 'website-starter-build',
        'Stabilises trust and conversion basics quickly.',
        'Launch a clean conversion-first baseline with clear CTA routing.', 'From £399'),
    ModuleDefinition(
        'website_pro', 'Website Pro Build', 'website-pro-build',
        'Improves speed, offer hierarchy and conversion flow.',
        'Rebuild key templates for faster load and stronger buyer intent.', 'From £549'),
    ModuleDefinition(
        'seo_sprint', 'SEO Upgrade Pack', 'seo-upgrade-pack',
        'Targets qualified demand from high-intent search terms.',
        'Refactor metadata, intent pages and internal links for local rankings.', 'From £499'),
    ModuleDefinition(
        'chatbot', 'AI Chatbot Install', 'ai-chatbot-install',
        'Captures and qualifies leads 24/7 when your team is unavailable.',
        'Install an always-on assistant for first response and qualification.'),
    ModuleDefinition(
        'crm', 'CRM Setup', 'crm-setup',
        'Prevents lead leakage by enforcing pipeline ownership.',
        'Deploy stage tracking so every enquiry has a next action.', 'From £599'),
    ModuleDefinition(
        'follow_up', 'Follow-up Automation', 'follow-up-automation',
        'Stops warm leads cooling after first contact.',
        'Automate first touch, reminders and reactivation sequences.', 'From £549'),
    ModuleDefinition(
        'call_recovery', 'Call Tracking + Missed Call Capture', 'call-tracking-missed-call-capture',
        'Recovers lost inbound demand from unanswered calls.',
        'Route missed calls into instant text-back and callback workflows.', 'From £499'),
    ModuleDefinition(
        'booking', 'Booking System Setup', 'booking-system-setup',
        'Shortens the path from interest to confirmed booking.',
        'Install booking paths with reminders to reduce no-shows.', 'From £449'),
    ModuleDefinition(
        'whatsapp', 'WhatsApp Business Setup', 'whatsapp-business-setup',
        'Opens a fast-response channel for high-intent prospects.',
        'Add WhatsApp contact and response templates across high-intent pages.', 'From £399'),
    ModuleDefinition(
        'ads', 'Ads Launch Pack', 'ads-launch-pack',
        'Adds controlled demand capture once conversion foundations are ready.',
        'Launch focused traffic campaigns tied to conversion-ready pages.'),
    ModuleDefinition(
        'analytics', 'Tracking & Analytics Layer', None,
        'Shows exactly where revenue is leaking by source and stage.',
        'Instrument key events and reporting so optimisation is measurable.',
        fallback_href='/services#tracking-analytics'),
]}


def phase_for(index: int) -> str:
    if index <= 1:
        return 'Day 1-3'
    if index <= 3:
        return 'Day 4-7'
    return 'Day 8-14'


def _candidates(scores, leak_tags, industry, goal):
    industry = (industry or '').lower()
    goal = (goal or '').lower()
    leaks = [tag.lower() for tag in leak_tags or []]

    def leaking(name):
        return any(name in tag for tag in leaks)

    candidates = []

    def add(key, priority, why=None):
        candidates.append((key, priority, why))

    if scores.get('speed', 100) < 60:
        add('website_pro', 98, 'Raises site speed and improves first-page conversion momentum.')
    if scores.get('seo', 100) < 62:
        add('seo_sprint', 96, 'Targets higher-intent traffic that is more likely to book.')
    if scores.get('conversion', 100) < 60:
        add('website_pro', 95, 'Sharpens above-the-fold offer and call-to-action clarity.')
        add('booking', 90, 'Cuts friction between enquiry and confirmed booking.')
    if scores.get('trust', 100) < 60:
        add('chatbot', 88, 'Maintains instant response coverage and buyer confidence.')

    if LOCAL_RE.search(industry):
        add('call_recovery', 94, 'Recovers missed-call enquiries before competitors respond.')
        add('whatsapp', 86, 'Lets urgent prospects contact you in one tap.')
    if ECOM_RE.search(industry):
        add('ads', 90, 'Scales demand after conversion and checkout improvements are in place.')
        add('follow_up', 86, 'Recovers drop-offs with lifecycle and cart follow-up.')
    if LEADS_GOAL_RE.search(goal):
        add('crm', 92, 'Ensures every lead is assigned, tracked and followed up.')
        add('follow_up', 89, 'Protects warm leads with consistent response automation.')
    if SALES_GOAL_RE.search(goal):
        add('booking', 91, 'Turns interest into booked buying conversations faster.')
        add('website_pro', 88, 'Improves offer and pricing communication to lift close rate.')

    if leaking('seo'):
        add('seo_sprint', 84)
    if leaking('conversion'):
        add('website_pro', 83)
    if leaking('speed'):
        add('website_pro', 82)
    if leaking('trust'):
        add('chatbot', 81)

    add('analytics', 74)
    add('crm', 73)
    add('website_starter', 70)
    return candidates


def recommend(scores: Dict[str, int], leak_tags: Iterable[str],
              industry: str = '', goal: str = '') -> List[ModuleCard]:
    """Ranked, deduplicated, phased module cards for a scored audit."""
    cfg = section('recommendations')

    best = {}
    for key, priority, why in _candidates(scores, leak_tags, industry, goal):
        current = best.get(key)
        if current is None or priority > current[0]:
            best[key] = (priority, why)

    # sorted() is stable, so equal priorities keep rule order
    ordered = sorted(best.items(), key=lambda item: item[1][0], reverse=True)[:cfg['max_items']]

    for key in cfg['fallback_order']:
        if len(ordered) >= cfg['min_items']:
            break
        if key not in dict(ordered):
            ordered.append((key, (cfg['fallback_priority'], None)))

    cards = []
    for index, (key, (priority, why)) in enumerate(ordered):
        module = MODULE_CATALOGUE[key]
        cards.append(ModuleCard(
            key=key,
            title=module.title,
            why=why or module.default_why,
            action=module.default_action,
            href=module.href,
            price_label=module.price_label or cfg['default_price_label'],
            phase=phase_for(index),
            priority=priority,
        ))
    return cards


# ── Upgrade cards by primary concern ─────────────────────────────────────────

_DEFAULT_UPGRADES = [
    ('Website conversion upgrade', 'Your pages need clearer offers and stronger conversion routes.',
     'website-pro-build', 'From £549'),
    ('Follow-up automation', 'Fast response wins. Automation protects warm leads from cooling.',
     'follow-up-automation', 'From £549'),
    ('CRM setup', 'Visibility in pipeline stages prevents leakage and missed handoffs.',
     'crm-setup', 'From £599'),
]

_UPGRADES_BY_CONCERN = {
    'Need website': [
        ('Website Starter Build', 'Launch fast with a premium online presence in 72 hours.',
         'website-starter-build', 'From £399'),
        ('Booking system setup', 'Give buyers a clear path from enquiry to confirmed slot.',
         'booking-system-setup', 'From £449'),
        _DEFAULT_UPGRADES[1],
        _DEFAULT_UPGRADES[2],
    ],
    'Slow replies': [
        ('Call tracking + missed call capture', 'Recover calls immediately before competitors respond.',
         'call-tracking-missed-call-capture', 'From £499'),
        ('WhatsApp business setup', 'Open a fast-response channel for mobile-first leads.',
         'whatsapp-business-setup', 'From £399'),
        _DEFAULT_UPGRADES[1],
    ],
    'Bad SEO': [
        ('SEO Upgrade Pack', 'Fix technical visibility and improve high-intent rankings.',
         'seo-upgrade-pack', 'From £499'),
        _DEFAULT_UPGRADES[0],
        _DEFAULT_UPGRADES[2],
    ],
}


def upgrade_cards(primary_concern: str) -> List[dict]:
    """Service upsell cards matching the lead's stated primary concern."""
    rows = _UPGRADES_BY_CONCERN.get(primary_concern, _DEFAULT_UPGRADES)
    return [
        {'title': title, 'reason': reason, 'href': f'/services/{slug}', 'price_label': price}
        for title, reason, slug, price in rows
    ]
