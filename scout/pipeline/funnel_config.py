"""
Funnel tunables (YAML with hardcoded fallback).

Gate caps, fallback weights, the sentiment lexicon and engagement weights are
data, not code: they live in funnel_config.yaml next to this module.
"""
import logging
import os
from typing import Any, Dict

import yaml

logger = logging.getLogger('pipeline.funnel_config')

_funnel_config = None


def _default_config() -> Dict[str, Any]:
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'investigation': {
            'cap_ratio': 0.4,
            'cap_max': 10,
            'fallback': {'min_description_chars': 20, 'advance_score': 0.6, 'reject_score': 0.5},
        },
        'storage': {
            'fallback': {
                'base': 0.5,
                'has_comments': 0.2,
                'has_author_reply': 0.2,
                'high_rating': 0.1,
                'recent_activity': 0.1,
            },
            'high_rating_min': 4.0,
            'recent_markers': ['minute', 'hour', 'day'],
        },
        'sentiment': {
            'dominance_ratio': 1.5,
            'positive': ['great', 'awesome', 'love', 'amazing', 'excellent', 'perfect',
                         'fantastic', 'wonderful', 'good', 'fun', 'enjoy', 'like'],
            'negative': ['bad', 'terrible', 'awful', 'hate', 'broken', 'bug', 'crash',
                         'horrible', 'worst', 'sucks', 'disappointed'],
            'scores': {'positive': 1.0, 'mixed': 0.5, 'neutral': 0.5, 'negative': 0.0},
        },
        'engagement': {
            'comments': {'cap': 20, 'weight': 0.5},
            'screenshots': {'cap': 5, 'weight': 0.25},
            'tags': {'cap': 10, 'weight': 0.25},
        },
        'source': {'category_min_confidence': 0.5, 'max_categories': 3, 'page_item_limit': 20},
        'detail': {'max_comments': 15},
        'content': {'max_chars': 5000, 'description_chars': 200},
    }


def load_funnel_config() -> Dict[str, Any]:
    """Load funnel config from YAML, with in-memory cache and hardcoded fallback."""
    global _funnel_config
    if _funnel_config is not None:
        return _funnel_config

    config_path = os.path.join(os.path.dirname(__file__), 'funnel_config.yaml')
    try:
        with open(config_path, 'r') as f:
            _funnel_config = yaml.safe_load(f)
        logger.info("Funnel config loaded from YAML (version=%s)", _funnel_config.get('version', '?'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Funnel config YAML unavailable (%s), using defaults", e)
        _funnel_config = _default_config()

    return _funnel_config


def reset_funnel_config():
    """Drop the cached config (tests)."""
    global _funnel_config
    _funnel_config = None
