"""
Scan routes — start a website audit and poll its progress.
"""
import logging

from flask import Blueprint, request, jsonify

from growth_audit.pipeline.manager import start_scan, get_scan_status

logger = logging.getLogger('routes.scans')

bp = Blueprint('scans', __name__)


@bp.route('/api/scans', methods=['POST'])
def create_scan():
    """Validate intake and queue an audit. Answers 202 before any work runs."""
    data = request.get_json(silent=True) or {}
    lead_context = data.get('lead') or {
        key: data.get(key) for key in (
            'full_name', 'business_name', 'email', 'mobile_number',
            'industry', 'goal', 'primary_concern', 'source',
        )
    }
    result = start_scan(data.get('url', ''), lead_context, report_id=data.get('report_id'))
    return jsonify(result), 202


@bp.route('/api/scans/<scan_id>')
def scan_status(scan_id):
    return jsonify(get_scan_status(scan_id))
