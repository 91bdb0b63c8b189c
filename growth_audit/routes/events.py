"""
Event routes — client-reported activity (PDF downloads, module clicks, ...).
"""
from flask import Blueprint, request, jsonify

from growth_audit.pipeline.manager import record_event

bp = Blueprint('events', __name__)


@bp.route('/api/events', methods=['POST'])
def create_event():
    data = request.get_json(silent=True) or {}
    payload = data.get('payload')
    event = record_event(
        (data.get('type') or '').strip(),
        lead_id=data.get('lead_id') or None,
        audit_run_id=data.get('audit_run_id') or None,
        simulator_run_id=data.get('simulator_run_id') or None,
        payload=payload if isinstance(payload, dict) else None,
    )
    return jsonify(event), 201
