"""
Intake validation — website URL normalisation and lead contact fields.

Everything here raises ValidationError with the offending field name; nothing
is written until both the URL and the lead context pass.
"""
import re
from urllib.parse import urlsplit, urlunsplit

from growth_audit.config import LEAD_REASONS, DEFAULT_LEAD_REASON, DEFAULT_INDUSTRY
from growth_audit.errors import ValidationError

PHONE_RE = re.compile(r'^[+()\d\s-]{7,22}$')
EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.-]*://', re.I)

REQUIRED_FIELDS = {
    'full_name': 'Full name is required.',
    'mobile_number': 'Mobile number is required.',
    'business_name': 'Business name is required.',
}


def _clean(value, limit=200):
    return value.strip()[:limit] if isinstance(value, str) else ''


def normalise_website_url(raw: str) -> str:
    """
    https:// when scheme-less, http(s) only, fragment dropped, "/" for an empty path.

    >>> normalise_website_url('example.com')
    'https://example.com/'
    """
    value = _clean(raw, 2048)
    if not value:
        raise ValidationError('Website URL is required.', field='url')
    if not SCHEME_RE.match(value):
        value = f'https://{value}'

    try:
        parts = urlsplit(value)
        hostname = parts.hostname
    except ValueError:
        raise ValidationError('Website URL is not valid.', field='url') from None

    if parts.scheme.lower() not in ('http', 'https'):
        raise ValidationError('Website URL must use http or https.', field='url')
    if not hostname or ' ' in value:
        raise ValidationError('Website URL is not valid.', field='url')

    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or '/', parts.query, ''))


def validate_lead_context(context: dict) -> dict:
    """Required contact fields, phone/email shape, reason and industry defaults."""
    context = context or {}
    lead = {key: _clean(context.get(key)) for key in REQUIRED_FIELDS}
    for key, message in REQUIRED_FIELDS.items():
        if not lead[key]:
            raise ValidationError(message, field=key)

    if not PHONE_RE.match(lead['mobile_number']):
        raise ValidationError('Mobile number is not valid.', field='mobile_number')

    email = _clean(context.get('email')).lower()
    if email and not EMAIL_RE.match(email):
        raise ValidationError('Email address is not valid.', field='email')

    reason = _clean(context.get('primary_concern')) or DEFAULT_LEAD_REASON
    if reason not in LEAD_REASONS:
        raise ValidationError(f'Primary concern must be one of: {", ".join(LEAD_REASONS)}.',
                              field='primary_concern')

    lead.update(
        email=email or None,
        primary_concern=reason,
        industry=_clean(context.get('industry'), 100) or DEFAULT_INDUSTRY,
        goal=_clean(context.get('goal'), 120),
        source=_clean(context.get('source'), 60) or 'website_audit',
    )
    return lead
