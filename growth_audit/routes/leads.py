"""
Lead routes — priority score and generated follow-up messages.
"""
import logging

from flask import Blueprint, jsonify

from growth_audit.pipeline.manager import (
    get_lead_score, recompute_lead_score,
    get_latest_generated_message, get_generated_message, generate_follow_up_message,
)

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


# ── Score ────────────────────────────────────────────────────────────────────

@bp.route('/api/leads/<lead_id>/score')
def lead_score(lead_id):
    """Cached score and category."""
    return jsonify(get_lead_score(lead_id))


@bp.route('/api/leads/<lead_id>/score', methods=['POST'])
def rescore_lead(lead_id):
    """Recompute from history; may trigger hot-lead automation."""
    result = recompute_lead_score(lead_id)
    logger.info("Lead %s rescored via API: %d (%s)", lead_id, result['score'], result['category'])
    return jsonify(result)


# ── Follow-up messages ───────────────────────────────────────────────────────

@bp.route('/api/leads/<lead_id>/messages/latest')
def latest_message(lead_id):
    return jsonify(get_latest_generated_message(lead_id))


@bp.route('/api/leads/<lead_id>/messages', methods=['POST'])
def create_message(lead_id):
    return jsonify(generate_follow_up_message(lead_id)), 201


@bp.route('/api/messages/<message_id>')
def message_detail(message_id):
    return jsonify(get_generated_message(message_id))
