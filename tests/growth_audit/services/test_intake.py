"""Tests for growth_audit.services.intake — URL normalisation and lead fields."""
import pytest

from growth_audit.errors import ValidationError
from growth_audit.services.intake import normalise_website_url, validate_lead_context


class TestNormaliseWebsiteUrl:

    @pytest.mark.parametrize('raw,expected', [
        ('example.com', 'https://example.com/'),
        ('  Example.COM/Pricing  ', 'https://example.com/Pricing'),
        ('http://example.com', 'http://example.com/'),
        ('HTTPS://Example.com/a?b=1#top', 'https://example.com/a?b=1'),
        ('example.com:8080/x', 'https://example.com:8080/x'),
    ])
    def test_normalises(self, raw, expected):
        assert normalise_website_url(raw) == expected

    @pytest.mark.parametrize('raw,message', [
        ('', 'required'),
        (None, 'required'),
        ('ftp://example.com', 'http or https'),
        ('https://', 'not valid'),
        ('https://exa mple.com', 'not valid'),
        ('http://[::1', 'not valid'),
    ])
    def test_rejects(self, raw, message):
        with pytest.raises(ValidationError, match=message) as exc:
            normalise_website_url(raw)
        assert exc.value.field == 'url'


class TestValidateLeadContext:

    def test_minimal_context_gets_defaults(self, lead_context):
        for key in ('email', 'industry', 'goal', 'primary_concern'):
            lead_context.pop(key)
        lead = validate_lead_context(lead_context)
        assert lead['email'] is None
        assert lead['industry'] == 'General'
        assert lead['goal'] == ''
        assert lead['primary_concern'] == 'All of it'
        assert lead['source'] == 'website_audit'

    def test_trims_and_lowercases_email(self, lead_context):
        lead_context.update(full_name='  Sam Carter ', email=' Sam@BrightSmile.Example ')
        lead = validate_lead_context(lead_context)
        assert lead['full_name'] == 'Sam Carter'
        assert lead['email'] == 'sam@brightsmile.example'

    @pytest.mark.parametrize('field', ['full_name', 'mobile_number', 'business_name'])
    def test_required_fields(self, lead_context, field):
        lead_context[field] = '   '
        with pytest.raises(ValidationError) as exc:
            validate_lead_context(lead_context)
        assert exc.value.field == field

    @pytest.mark.parametrize('field,value', [
        ('mobile_number', 'call me'),
        ('mobile_number', '12'),
        ('email', 'not-an-email'),
        ('primary_concern', 'Aliens'),
    ])
    def test_invalid_values(self, lead_context, field, value):
        lead_context[field] = value
        with pytest.raises(ValidationError) as exc:
            validate_lead_context(lead_context)
        assert exc.value.field == field

    def test_none_context(self):
        with pytest.raises(ValidationError):
            validate_lead_context(None)
