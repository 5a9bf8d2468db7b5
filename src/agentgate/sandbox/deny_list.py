"""
AgentGate Guard Configuration

Static rule set the ShellGuard evaluates commands against:

- Deny list: severity-tagged regexes that always block (critical, high, medium)
- Network patterns: tools blocked under SANDBOXED trust
- Rewrite rules: safer forms of allowed commands, applied in non-strict mode
- Filesystem rules: write root and read-only prefixes
- Timeouts: seconds a command may run per trust level

GuardConfig is frozen and versioned. Build a new one with model_copy(update=...)
rather than mutating the default.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from agentgate.policies.models import TrustLevel


class Severity(str, Enum):
    """How bad a blocked command is."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class DenyPattern(BaseModel):
    """A regex that blocks any command it matches (case-sensitive search)."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    reason: str
    severity: Severity


class NetworkPattern(BaseModel):
    """A regex identifying a network tool."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    tool: str


class RewriteRule(BaseModel):
    """Replace the first match of `pattern` with `replacement`.

    When `when_trust` is set the rule only applies at that trust level.
    """

    model_config = ConfigDict(frozen=True)

    pattern: str
    replacement: str
    reason: str
    when_trust: TrustLevel | None = None


class FsRules(BaseModel):
    """Filesystem write rules (static prefix checks, no path resolution)."""

    model_config = ConfigDict(frozen=True)

    write_root: str = "/workspace"
    readonly_paths: tuple[str, ...] = ("/usr", "/etc", "/bin", "/sbin", "/boot", "/sys", "/proc")


# ─── Deny list ─────────────────────────────────────────────

CRITICAL_PATTERNS: tuple[DenyPattern, ...] = (
    DenyPattern(
        pattern=r"rm\s+-rf\s+\/",
        reason="Attempting to delete root directory",
        severity=Severity.CRITICAL,
    ),
    DenyPattern(
        pattern=r"rm\s+-rf\s+~",
        reason="Attempting to delete home directory",
        severity=Severity.CRITICAL,
    ),
    DenyPattern(
        pattern=r":\(\)\s*{\s*:\|:&\s*};:",
        reason="Fork bomb detected",
        severity=Severity.CRITICAL,
    ),
    DenyPattern(
        pattern=r"mkfs",
        reason="Attempting to format filesystem",
        severity=Severity.CRITICAL,
    ),
    DenyPattern(
        pattern=r"dd\s+if=.*of=\/dev\/(sd[a-z]|hd[a-z]|nvme\d+n\d+)",
        reason="Attempting to write to raw disk device",
        severity=Severity.CRITICAL,
    ),
    DenyPattern(
        pattern=r"chmod\s+-R\s+777\s+\/",
        reason="Attempting to set world-writable permissions on root",
        severity=Severity.CRITICAL,
    ),
)

HIGH_PATTERNS: tuple[DenyPattern, ...] = (
    DenyPattern(
        pattern=r"docker\s+system\s+prune\s+-a",
        reason="Attempting to prune all Docker resources",
        severity=Severity.HIGH,
    ),
    DenyPattern(
        pattern=r"curl.*\|\s*(sudo\s+)?bash",
        reason="Executing remote script with elevated privileges",
        severity=Severity.HIGH,
    ),
    DenyPattern(
        pattern=r"wget.*\|\s*(sudo\s+)?sh",
        reason="Executing remote script with elevated privileges",
        severity=Severity.HIGH,
    ),
    DenyPattern(
        pattern=r"sudo\s+chmod\s+u\+s",
        reason="Setting SUID bit with sudo",
        severity=Severity.HIGH,
    ),
    DenyPattern(
        pattern=r">\s*\/dev\/(sda|hda|nvme)",
        reason="Redirecting output to disk device",
        severity=Severity.HIGH,
    ),
)

MEDIUM_PATTERNS: tuple[DenyPattern, ...] = (
    DenyPattern(
        pattern=r"rm\s+-rf\s+\*$",
        reason="Recursive deletion of all files in current directory",
        severity=Severity.MEDIUM,
    ),
    DenyPattern(
        pattern=r"pkill\s+-9\s+-U",
        reason="Force killing all processes for a user",
        severity=Severity.MEDIUM,
    ),
    DenyPattern(
        pattern=r"iptables\s+-F",
        reason="Flushing iptables rules",
        severity=Severity.MEDIUM,
    ),
)

DENY_LIST: tuple[DenyPattern, ...] = CRITICAL_PATTERNS + HIGH_PATTERNS + MEDIUM_PATTERNS

# ─── Network tools ─────────────────────────────────────────

NETWORK_PATTERNS: tuple[NetworkPattern, ...] = (
    NetworkPattern(pattern=r"\bcurl\b", tool="curl"),
    NetworkPattern(pattern=r"\bwget\b", tool="wget"),
    NetworkPattern(pattern=r"\bssh\b", tool="ssh"),
    NetworkPattern(pattern=r"\bscp\b", tool="scp"),
    NetworkPattern(pattern=r"\brsync\b.*:", tool="rsync"),
    NetworkPattern(pattern=r"\bftp\b", tool="ftp"),
    NetworkPattern(pattern=r"\btelnet\b", tool="telnet"),
    NetworkPattern(pattern=r"\bnc\b", tool="netcat"),
)

# ─── Rewrites ──────────────────────────────────────────────

REWRITE_RULES: tuple[RewriteRule, ...] = (
    RewriteRule(
        pattern=r"\bnpm\s+install\s*$",
        replacement="npm ci",
        reason="Install exactly what the lockfile pins",
        when_trust=TrustLevel.SANDBOXED,
    ),
    RewriteRule(
        pattern=r"\bgit\s+push\s+(-f|--force)(?=\s|$)",
        replacement="git push --force-with-lease",
        reason="Refuse to clobber remote work",
    ),
)


class GuardConfig(BaseModel):
    """Complete, immutable Guard rule set."""

    model_config = ConfigDict(frozen=True)

    version: int = 1
    deny_patterns: tuple[DenyPattern, ...] = DENY_LIST
    network_patterns: tuple[NetworkPattern, ...] = NETWORK_PATTERNS
    rewrite_rules: tuple[RewriteRule, ...] = REWRITE_RULES
    fs: FsRules = Field(default_factory=FsRules)
    timeouts: dict[TrustLevel, int] = Field(
        default_factory=lambda: {
            TrustLevel.RESTRICTED: 0,
            TrustLevel.SANDBOXED: 300,
            TrustLevel.UNTRUSTED: 600,
        }
    )
    default_timeout: int = 300


DEFAULT_GUARD_CONFIG = GuardConfig()


def find_matching_deny_pattern(
    command: str, patterns: tuple[DenyPattern, ...] = DENY_LIST
) -> DenyPattern | None:
    """Return the first deny pattern matching the command, if any."""
    for deny in patterns:
        if re.search(deny.pattern, command):
            return deny
    return None
