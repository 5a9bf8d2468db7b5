"""AgentGate Guard: policy-driven filter for proposed shell commands."""

from agentgate.sandbox.deny_list import (
    DEFAULT_GUARD_CONFIG,
    DENY_LIST,
    NETWORK_PATTERNS,
    REWRITE_RULES,
    DenyPattern,
    FsRules,
    GuardConfig,
    NetworkPattern,
    RewriteRule,
    Severity,
    find_matching_deny_pattern,
)
from agentgate.sandbox.guard import FsAccessVerdict, GuardVerdict, ShellGuard

__all__ = [
    "ShellGuard",
    "GuardVerdict",
    "FsAccessVerdict",
    "GuardConfig",
    "DEFAULT_GUARD_CONFIG",
    "DenyPattern",
    "NetworkPattern",
    "RewriteRule",
    "FsRules",
    "Severity",
    "DENY_LIST",
    "NETWORK_PATTERNS",
    "REWRITE_RULES",
    "find_matching_deny_pattern",
]
