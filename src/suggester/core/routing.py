# Author: Bradley R. Kinnard — determinism is underrated

"""
Pick a model tier per issue. Hash-based so the same finding lands on the same tier every run.
"""

import hashlib
import logging

from src.suggester.config import Settings, TEMPLATE_MODE
from src.suggester.core.models import Category, Issue, Severity

log = logging.getLogger(__name__)

_PRIMARY_ALIASES = {"nova-premier", "premier", "nova-pro", "pro", "primary"}
_LIGHT_ALIASES = {"nova-lite", "lite", "light"}
_TEMPLATE_ALIASES = {"template", "template_mode", "templates"}


def issue_bucket(issue: Issue) -> int:
    """sha256 of id/type/file/line, folded into 0..99"""
    key = f"{issue.id}_{issue.type}_{issue.file}_{issue.line if issue.line is not None else ''}"
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % 100


def resolve_override(override: str, settings: Settings) -> str:
    """friendly names map to configured ids, anything else is taken as a raw model id"""
    name = override.strip()
    lowered = name.lower()
    if lowered in _PRIMARY_ALIASES:
        return settings.model_id
    if lowered in _LIGHT_ALIASES:
        return settings.light_model_id
    if lowered in _TEMPLATE_ALIASES:
        return TEMPLATE_MODE
    return name


def select_model(issue: Issue, settings: Settings, override: str | None = None) -> str:
    """
    Primary tier is expensive, so it only sees a sliver of critical security issues.
    Most traffic goes light, a slice goes straight to templates.
    """
    if override:
        return resolve_override(override, settings)

    bucket = issue_bucket(issue)
    if issue.category is Category.SECURITY and issue.severity is Severity.CRITICAL:
        return settings.model_id if bucket < settings.route_critical_primary_pct else settings.light_model_id

    if bucket < settings.route_light_pct:
        return settings.light_model_id
    if bucket < settings.route_light_pct + settings.route_template_pct:
        return TEMPLATE_MODE
    return settings.light_model_id
