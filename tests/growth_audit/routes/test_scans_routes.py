"""Tests for POST /api/scans and GET /api/scans/<id>."""
import pytest
from unittest.mock import patch

from growth_audit.services import repository as repository_mod


class TestCreateScan:

    def test_accepts_nested_lead(self, client, inline_orchestrator, lead_context):
        resp = client.post('/api/scans', json={'url': 'example.com', 'lead': lead_context})
        assert resp.status_code == 202
        data = resp.get_json()
        assert data['status'] == 'QUEUED'
        assert data['progress'] == 4
        assert set(data) == {'lead_id', 'scan_id', 'report_id', 'status', 'progress'}

    def test_accepts_top_level_fields(self, client, inline_orchestrator, lead_context):
        resp = client.post('/api/scans', json=dict(lead_context, url='https://example.com'))
        assert resp.status_code == 202

    def test_report_id_passed_through(self, client, inline_orchestrator, lead_context):
        resp = client.post('/api/scans', json={'url': 'example.com', 'lead': lead_context,
                                               'report_id': 'shared-report'})
        assert resp.get_json()['report_id'] == 'shared-report'

    def test_invalid_url_is_400(self, client, inline_orchestrator, lead_context):
        resp = client.post('/api/scans', json={'url': 'ftp://example.com', 'lead': lead_context})
        assert resp.status_code == 400
        assert resp.get_json()['field'] == 'url'

    def test_missing_contact_is_400(self, client, inline_orchestrator):
        resp = client.post('/api/scans', json={'url': 'example.com'})
        assert resp.status_code == 400
        assert resp.get_json()['field'] == 'full_name'

    def test_no_body_is_400(self, client, inline_orchestrator):
        resp = client.post('/api/scans', data='not json', content_type='text/plain')
        assert resp.status_code == 400

    def test_persistence_disabled_is_503(self, client, lead_context):
        with patch.object(repository_mod, 'STORE_BACKEND', 'none'):
            resp = client.post('/api/scans', json={'url': 'example.com', 'lead': lead_context})
        assert resp.status_code == 503
        assert resp.get_json()['status'] == 'not_configured'


class TestScanStatus:

    def test_completed_scan_has_results(self, client, inline_orchestrator, lead_context):
        scan_id = client.post('/api/scans', json={'url': 'example.com', 'lead': lead_context}
                              ).get_json()['scan_id']
        resp = client.get(f'/api/scans/{scan_id}')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['status'] == 'COMPLETED'
        assert data['progress'] == 100
        assert data['url'] == 'https://example.com/'
        for key in ('scores', 'confidence', 'insights', 'recommendations', 'snapshot'):
            assert key in data

    def test_unknown_scan_is_404(self, client, repository):
        resp = client.get('/api/scans/does-not-exist')
        assert resp.status_code == 404
        assert 'not found' in resp.get_json()['error']
