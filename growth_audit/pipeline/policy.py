"""
Business policy loader — score weights, point caps and thresholds.

YAML file next to this module with an in-memory cache and a hardcoded
fallback. Sections missing from the YAML fall back to the defaults key by key,
so a partial file only overrides what it names.
"""
import copy
import logging
import os

import yaml

logger = logging.getLogger('pipeline.policy')


_policy = None


def _default_policy():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'audit': {
            'weights': {'speed': 0.25, 'seo': 0.25, 'conversion': 0.30, 'trust': 0.20},
            'leak_cutoff': 60,
            'measured_speed_weight': 0.6,
            'top_findings': 10,
            'insights': 4,
            'max_recommendations': 8,
        },
        'recommendations': {
            'min_items': 4,
            'max_items': 6,
            'fallback_order': ['website_pro', 'seo_sprint', 'crm', 'follow_up'],
            'fallback_priority': 50,
            'default_price_label': 'From £399',
        },
        'lead_score': {
            'thresholds': {'hot': 85, 'warm': 55},
            'lookback': {'audit_runs': 6, 'simulator_runs': 6, 'events': 300},
            'audit_runs': {'first': 16, 'each_additional': 3, 'cap': 24},
            'simulator_runs': {'first': 12, 'each_additional': 4, 'cap': 20},
            'pdf_downloads': {'each': 5, 'cap': 12},
            'module_clicks': {'each': 2, 'cap': 10},
            'repeat_days': {'each': 2, 'cap': 10},
            'revenue_tiers': [
                {'min': 12000, 'points': 18},
                {'min': 7000, 'points': 14},
                {'min': 3000, 'points': 10},
                {'min': 0, 'points': 6},
            ],
            'business_size': {
                'visitors_min': 6000, 'visitors_points': 6,
                'aov_min': 400, 'aov_points': 4,
                'business_name_points': 1,
                'website_points': 1,
                'cap': 10,
            },
            'urgency': {
                'high': 12, 'medium': 8, 'focused': 4,
                'audit_high_below': 50, 'audit_medium_below': 75,
            },
            'recency': {'days_short': 3, 'points_short': 6, 'days_long': 7, 'points_long': 3},
            'max_reasons': 8,
        },
        'automation': {
            'retrigger': 'suppress',
        },
        'followup': {
            'default_overall_score': 58,
            'filler_finding': 'Speed-to-lead follow-up gap',
            'fallback_ranges': [
                {'below': 50, 'low': 2500, 'high': 7000},
                {'below': 70, 'low': 1500, 'high': 4200},
                {'below': 101, 'low': 800, 'high': 2400},
            ],
        },
    }


def _merge(base, override):
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_policy() -> dict:
    """Load policy from YAML, with in-memory cache and hardcoded fallback."""
    global _policy
    if _policy is not None:
        return _policy

    policy_path = os.path.join(os.path.dirname(__file__), 'policy.yaml')
    try:
        with open(policy_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        _policy = _merge(_default_policy(), loaded)
        logger.info("Policy loaded from YAML (version=%s)", _policy.get('version', '?'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Policy YAML unavailable (%s), using defaults", e)
        _policy = _default_policy()

    return _policy


def section(name: str) -> dict:
    """One top-level policy section, e.g. section('lead_score')."""
    return load_policy().get(name, {})


def get_overall_weights() -> dict:
    return section('audit')['weights']


def get_hot_threshold() -> int:
    """Score at which a lead is hot and the follow-up automation fires."""
    return section('lead_score')['thresholds']['hot']


def get_retrigger_policy() -> str:
    return section('automation')['retrigger']


def categorise_score(score: int) -> str:
    """hot / warm / cold from the lead score threshold ladder."""
    thresholds = section('lead_score')['thresholds']
    if score >= thresholds['hot']:
        return 'hot'
    if score >= thresholds['warm']:
        return 'warm'
    return 'cold'


def reset_cache():
    """Reset the in-memory cache (useful for testing)."""
    global _policy
    _policy = None
