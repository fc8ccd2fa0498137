"""
Pipeline stage contracts.

Each platform-specific stage (source scanning, detail scanning) is a class
registered in its module's ADAPTERS dict. The pipeline manager only sees the
uniform interface and looks adapters up by the mission's platform.
"""
from typing import Dict, List, Any, Type


class PlatformAdapter:
    """Base for platform adapters. Subclasses set the class attributes."""
    platform: str = ''
    stage: str = ''
    base_url: str = ''
    description: str = ''

    def absolute_url(self, url: str) -> str:
        """Resolve a scraped href against the platform's base URL."""
        url = (url or '').strip()
        if not url or url.startswith(('http://', 'https://')):
            return url
        if url.startswith('//'):
            return 'https:' + url
        return self.base_url.rstrip('/') + '/' + url.lstrip('/')


# ── Stage registry ────────────────────────────────────────────────────────────
# Each platform-specific stage module populates its own ADAPTERS dict, e.g.:
#   ADAPTERS = {'itchio': ItchioSourceScanner, 'steam': SteamSourceScanner}


def get_adapter(stage_adapters: Dict[str, Type[PlatformAdapter]], platform: str, **deps) -> Any:
    """Look up and instantiate the adapter for a platform."""
    adapter_cls = stage_adapters.get(platform)
    if not adapter_cls:
        raise ValueError(f"No adapter registered for platform '{platform}' in this stage")
    return adapter_cls(**deps)


def get_pipeline_info(stage_registry: Dict[str, Dict[str, Type[PlatformAdapter]]]) -> Dict[str, Any]:
    """
    Serialize the stage registry into a JSON-friendly dict.

    Returns: { "itchio": { "discovery": { "description": "...", "base_url": "..." }, ... }, ... }
    """
    result = {}
    for stage_name, adapters in stage_registry.items():
        for platform, cls in adapters.items():
            result.setdefault(platform, {})[stage_name] = {
                'description': cls.description or '',
                'base_url': cls.base_url,
            }
    return result


# ── Verdict joining ───────────────────────────────────────────────────────────

def _norm_key(key: str) -> str:
    return (key or '').strip().rstrip('/').lower()


def match_verdicts(verdicts: List[Any], items: List[Any]) -> Dict[str, Any]:
    """
    Join verdicts back to items by URL, falling back to title.

    Returns {item.key: verdict} for every item that has one; items the
    service skipped are simply absent.
    """
    by_key = {}
    for v in verdicts or []:
        by_key.setdefault(_norm_key(v.key), v)

    matched = {}
    for item in items:
        for candidate in (item.url, item.title):
            v = by_key.get(_norm_key(candidate)) if candidate else None
            if v is not None:
                matched[item.key] = v
                break
    return matched
