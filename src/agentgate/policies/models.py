"""
AgentGate Policy Profiles

A PolicyProfile pairs an approval mode (when a human must confirm) with a
trust level (what the Guard lets through) and a strictness flag. Profiles
are frozen values; the named presets cover the common setups.

Wire values use kebab-case ("on-failure") so profiles round-trip through
JSON unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError


class ApprovalMode(str, Enum):
    """When a human has to approve an agent action."""

    NEVER = "never"
    ON_FAILURE = "on-failure"
    ON_REQUEST = "on-request"


class TrustLevel(str, Enum):
    """How much the Guard trusts proposed shell commands.

    RESTRICTED: no shell, no filesystem writes.
    SANDBOXED: shell allowed inside the workspace, no network tools.
    UNTRUSTED: shell and network allowed, deny list still applies.
    """

    RESTRICTED = "restricted"
    SANDBOXED = "sandboxed"
    UNTRUSTED = "untrusted"


class PolicyProfile(BaseModel):
    """Immutable policy in force for one session."""

    model_config = ConfigDict(frozen=True)

    approvals: ApprovalMode = ApprovalMode.ON_FAILURE
    trust: TrustLevel = TrustLevel.SANDBOXED
    guard_strict: bool = True


DEFAULT_POLICY = PolicyProfile(
    approvals=ApprovalMode.ON_FAILURE,
    trust=TrustLevel.SANDBOXED,
    guard_strict=True,
)

AUTONOMOUS_POLICY = PolicyProfile(
    approvals=ApprovalMode.NEVER,
    trust=TrustLevel.SANDBOXED,
    guard_strict=True,
)

INTERACTIVE_POLICY = PolicyProfile(
    approvals=ApprovalMode.ON_REQUEST,
    trust=TrustLevel.SANDBOXED,
    guard_strict=True,
)

RESTRICTED_POLICY = PolicyProfile(
    approvals=ApprovalMode.ON_REQUEST,
    trust=TrustLevel.RESTRICTED,
    guard_strict=True,
)

DEVELOPMENT_POLICY = PolicyProfile(
    approvals=ApprovalMode.ON_FAILURE,
    trust=TrustLevel.UNTRUSTED,
    guard_strict=False,
)

POLICY_PRESETS: dict[str, PolicyProfile] = {
    "default": DEFAULT_POLICY,
    "autonomous": AUTONOMOUS_POLICY,
    "interactive": INTERACTIVE_POLICY,
    "restricted": RESTRICTED_POLICY,
    "development": DEVELOPMENT_POLICY,
}


def parse_policy_profile(data: Mapping[str, Any]) -> PolicyProfile:
    """Validate a mapping (e.g. decoded JSON) into a PolicyProfile.

    Accepts both "guard_strict" and the camelCase "guardStrict" key.

    Raises:
        ValueError: If the mapping is not a valid profile.
    """
    if not isinstance(data, Mapping):
        raise ValueError(f"Policy profile must be a mapping, got {type(data).__name__}")

    values = dict(data)
    if "guardStrict" in values and "guard_strict" not in values:
        values["guard_strict"] = values.pop("guardStrict")

    try:
        return PolicyProfile.model_validate(values)
    except ValidationError as e:
        raise ValueError(f"Invalid policy profile: {e}") from e


def get_policy(name: str) -> PolicyProfile:
    """Look up a named policy preset (case-insensitive).

    Raises:
        KeyError: If no preset has that name.
    """
    key = name.strip().lower()
    if key not in POLICY_PRESETS:
        raise KeyError(f"Unknown policy preset: {name} (choose from {', '.join(POLICY_PRESETS)})")
    return POLICY_PRESETS[key]
