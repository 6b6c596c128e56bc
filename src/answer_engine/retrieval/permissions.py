"""Principal-based permission rules for curated knowledge objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PermissionMode(str, Enum):
    ORG_WIDE = "org_wide"
    INHERITED_SOURCE_ACL = "inherited_source_acl"
    CUSTOM = "custom"


class RuleEffect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class PermissionRule:
    effect: RuleEffect
    principal_type: str
    principal_key: str


@dataclass
class KnowledgeObjectAccess:
    knowledge_object_id: str
    permissions_mode: str
    rules: list[PermissionRule] = field(default_factory=list)


def rule_matches(rule: PermissionRule, org_id: str, principal_keys: set[str]) -> bool:
    if rule.principal_type == "org" and rule.principal_key in (org_id, f"org:{org_id}"):
        return True
    return rule.principal_key in principal_keys


def is_permitted(access: KnowledgeObjectAccess, org_id: str, principal_keys: list[str] | None) -> bool:
    """Evaluate an object's permission mode against the viewer's principal keys.

    ``inherited_source_acl`` objects are never served from the knowledge store;
    their source ACLs are enforced on the document side instead. Unknown modes
    are denied.
    """
    if access.permissions_mode == PermissionMode.ORG_WIDE:
        return True
    if access.permissions_mode != PermissionMode.CUSTOM:
        return False

    keys = set(principal_keys or [])
    allow_rules = [r for r in access.rules if r.effect == RuleEffect.ALLOW]
    deny_match = any(
        rule_matches(r, org_id, keys) for r in access.rules if r.effect == RuleEffect.DENY
    )
    if deny_match:
        return False
    return not allow_rules or any(rule_matches(r, org_id, keys) for r in allow_rules)


def is_document_visible(
    connector_type: str | None,
    acl_principal_keys: set[str],
    viewer_principal_keys: list[str] | None,
    google_types: frozenset[str],
    acl_enforced_types: frozenset[str],
) -> bool:
    """Document-side ACL check; only applied when the viewer supplied identity keys."""
    if viewer_principal_keys is None:
        return True
    if connector_type in google_types:
        return True
    if connector_type in acl_enforced_types:
        return bool(acl_principal_keys & set(viewer_principal_keys))
    return False
