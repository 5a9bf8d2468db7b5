"""AgentGate policy profiles and presets."""

from agentgate.policies.models import (
    AUTONOMOUS_POLICY,
    DEFAULT_POLICY,
    DEVELOPMENT_POLICY,
    INTERACTIVE_POLICY,
    POLICY_PRESETS,
    RESTRICTED_POLICY,
    ApprovalMode,
    PolicyProfile,
    TrustLevel,
    get_policy,
    parse_policy_profile,
)

__all__ = [
    "ApprovalMode",
    "TrustLevel",
    "PolicyProfile",
    "DEFAULT_POLICY",
    "AUTONOMOUS_POLICY",
    "INTERACTIVE_POLICY",
    "RESTRICTED_POLICY",
    "DEVELOPMENT_POLICY",
    "POLICY_PRESETS",
    "get_policy",
    "parse_policy_profile",
]
