"""Tests for POST /api/simulator/runs."""
from unittest.mock import patch

from growth_audit.services import repository as repository_mod

INPUTS = {'visitors': 2500, 'avg_order_value': 180, 'response_time_minutes': 15, 'followups': 3,
          'offer_type': 'local-service', 'goal': 'more-bookings'}


class TestCreateSimulation:

    def test_stored_run(self, client, repository, make_lead):
        lead = make_lead()
        resp = client.post('/api/simulator/runs', json=dict(INPUTS, lead_id=lead['id']))
        assert resp.status_code == 201
        data = resp.get_json()
        assert data['simulator_run_id']
        assert 'lead_id' not in data['inputs']
        stored = repository.get('simulator_run', data['simulator_run_id'])
        assert stored['lead_id'] == lead['id']

    def test_outputs_shape(self, client, repository):
        outputs = client.post('/api/simulator/runs', json=INPUTS).get_json()['outputs']
        assert len(outputs['scenarios']) == 3
        assert len(outputs['funnel']['stages']) == 5
        assert outputs['baseline']['leads_per_month'] == 80

    def test_missing_inputs_is_400(self, client, repository):
        resp = client.post('/api/simulator/runs', json={'visitors': 100})
        assert resp.status_code == 400
        assert 'required' in resp.get_json()['error']

    def test_unknown_lead_is_404(self, client, repository):
        resp = client.post('/api/simulator/runs', json=dict(INPUTS, lead_id='nope'))
        assert resp.status_code == 404

    def test_runs_without_persistence(self, client):
        with patch.object(repository_mod, 'STORE_BACKEND', 'none'):
            resp = client.post('/api/simulator/runs', json=INPUTS)
        assert resp.status_code == 201
        assert resp.get_json()['simulator_run_id'] is None
