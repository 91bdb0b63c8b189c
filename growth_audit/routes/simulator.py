"""
Simulator routes — run a growth projection.
"""
from flask import Blueprint, request, jsonify

from growth_audit.pipeline.manager import run_simulation

bp = Blueprint('simulator', __name__)


@bp.route('/api/simulator/runs', methods=['POST'])
def create_simulation():
    data = request.get_json(silent=True) or {}
    inputs = {key: value for key, value in data.items() if key not in ('lead_id', 'audit_run_id')}
    result = run_simulation(inputs, lead_id=data.get('lead_id') or None,
                            audit_run_id=data.get('audit_run_id') or None)
    return jsonify(result), 201
