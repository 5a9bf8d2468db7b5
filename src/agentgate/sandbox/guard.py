"""
AgentGate Shell Guard

Policy filter every proposed shell command passes through before it can
reach a real shell. Evaluation order, first match wins:

1. RESTRICTED trust blocks everything
2. Static deny list (critical, high, medium)
3. SANDBOXED trust blocks network tools
4. Otherwise allowed, optionally rewritten to a safer form

The guard is a pure function of (command, trust, config). It holds no
mutable state and can be shared across sessions and tasks.

Note: this is NOT an OS-level sandbox. Filesystem checks are static
string prefix checks over paths heuristically pulled from the command.
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from agentgate.exceptions import ShellBlockedError
from agentgate.logging import get_logger
from agentgate.observability.metrics import record_guard_verdict
from agentgate.observability.tracing import get_tracer
from agentgate.policies.models import TrustLevel
from agentgate.sandbox.deny_list import DEFAULT_GUARD_CONFIG, GuardConfig, Severity

logger = get_logger("agentgate.sandbox")

RESTRICTED_REASON = "Shell execution is disabled in restricted trust mode"

_PATH_RE = re.compile(r"""(?:["']([^"']+)["'])|(?:\s(\/[^\s]+))|(?:\s(\.\/[^\s]+))""")
_ROOT_DELETE_RE = re.compile(r"rm\s+-rf\s+\/")
_DOCKER_PRUNE_AF_RE = re.compile(r"docker\s+system\s+prune\s+-af")


class GuardVerdict(BaseModel):
    """Outcome of evaluating one command.

    `severity` is set only on blocked verdicts. `rewritten` is set only on
    allowed verdicts from non-strict evaluation when a rule applied.
    """

    allowed: bool
    reason: str | None = None
    rewritten: str | None = None
    severity: Severity | None = None
    timeout_seconds: int = 0


class FsAccessVerdict(BaseModel):
    """Outcome of a filesystem write check."""

    allowed: bool
    reason: str | None = None


class ShellGuard:
    """Evaluates shell commands against a frozen GuardConfig."""

    def __init__(self, config: GuardConfig | None = None):
        self._config = config or DEFAULT_GUARD_CONFIG
        self._deny = [(re.compile(d.pattern), d) for d in self._config.deny_patterns]
        self._network = [(re.compile(n.pattern), n.tool) for n in self._config.network_patterns]
        self._rewrites = [(re.compile(r.pattern), r) for r in self._config.rewrite_rules]

    @property
    def config(self) -> GuardConfig:
        return self._config

    def evaluate(self, command: str, trust: TrustLevel, *, strict: bool = True) -> GuardVerdict:
        """Decide whether `command` may run at the given trust level.

        Args:
            command: Raw shell command line.
            trust: Trust level from the session's PolicyProfile.
            strict: When False, allowed commands may come back rewritten.
        """
        tracer = get_tracer()
        with tracer.start_as_current_span("agentgate.guard.evaluate") as span:
            span.set_attribute("agentgate.trust", trust.value)
            verdict = self._evaluate(command, trust, strict)
            span.set_attribute("agentgate.allowed", verdict.allowed)
            if verdict.severity is not None:
                span.set_attribute("agentgate.severity", verdict.severity.value)

        record_guard_verdict(
            trust=trust.value,
            allowed=verdict.allowed,
            severity=verdict.severity.value if verdict.severity else None,
        )
        if not verdict.allowed:
            logger.info(
                "Command blocked: %s",
                verdict.reason,
                extra={
                    "command": command,
                    "trust": trust.value,
                    "severity": verdict.severity.value if verdict.severity else None,
                },
            )
        return verdict

    def enforce(self, command: str, trust: TrustLevel, *, strict: bool = True) -> GuardVerdict:
        """Like evaluate, but raise ShellBlockedError instead of returning a block."""
        verdict = self.evaluate(command, trust, strict=strict)
        if not verdict.allowed:
            raise ShellBlockedError(
                f"Command blocked: {verdict.reason}",
                command=command,
                reason=verdict.reason or "Unknown reason",
                severity=verdict.severity.value if verdict.severity else None,
            )
        return verdict

    def _evaluate(self, command: str, trust: TrustLevel, strict: bool) -> GuardVerdict:
        if trust == TrustLevel.RESTRICTED:
            return GuardVerdict(allowed=False, reason=RESTRICTED_REASON, severity=Severity.HIGH)

        for regex, deny in self._deny:
            if regex.search(command):
                return GuardVerdict(allowed=False, reason=deny.reason, severity=deny.severity)

        if trust == TrustLevel.SANDBOXED:
            for regex, tool in self._network:
                if regex.search(command):
                    return GuardVerdict(
                        allowed=False,
                        reason=f"Network access ({tool}) is blocked in sandboxed trust mode",
                        severity=Severity.MEDIUM,
                    )

        rewritten = None if strict else self.rewrite(command, trust)
        return GuardVerdict(
            allowed=True,
            rewritten=rewritten,
            timeout_seconds=self.timeout_for(trust),
        )

    def suggest_alternative(self, command: str) -> str | None:
        """Offer a safer variant of a blocked command. Never applied automatically."""
        if _ROOT_DELETE_RE.search(command):
            return _ROOT_DELETE_RE.sub("rm -rf ./", command, count=1)
        if _DOCKER_PRUNE_AF_RE.search(command):
            return command.replace("-af", "", 1)
        return None

    def rewrite(self, command: str, trust: TrustLevel) -> str | None:
        """Apply the first matching rewrite rule. Returns None if nothing changed."""
        for regex, rule in self._rewrites:
            if rule.when_trust is not None and rule.when_trust != trust:
                continue
            if regex.search(command):
                rewritten = regex.sub(rule.replacement, command, count=1)
                return rewritten if rewritten != command else None
        return None

    def timeout_for(self, trust: TrustLevel) -> int:
        """Seconds a command may run at this trust level."""
        return self._config.timeouts.get(trust, self._config.default_timeout)

    def extract_paths(self, command: str) -> list[str]:
        """Pull quoted strings, absolute paths and ./ paths out of a command."""
        paths = []
        for match in _PATH_RE.finditer(command):
            value = match.group(1) or match.group(2) or match.group(3)
            if value:
                paths.append(value)
        return paths

    def validate_fs_access(self, paths: list[str], trust: TrustLevel) -> FsAccessVerdict:
        """Check whether writes to `paths` are permitted at this trust level."""
        if trust == TrustLevel.RESTRICTED:
            return FsAccessVerdict(
                allowed=False,
                reason="Filesystem writes disabled in restricted mode",
            )

        fs = self._config.fs
        for path in paths:
            for readonly in fs.readonly_paths:
                if path.startswith(readonly):
                    return FsAccessVerdict(
                        allowed=False,
                        reason=f"Write to read-only path: {readonly}",
                    )

            if trust == TrustLevel.SANDBOXED:
                if not path.startswith(fs.write_root) and not path.startswith("./"):
                    return FsAccessVerdict(
                        allowed=False,
                        reason=f"Write outside workspace root: {path}",
                    )

        return FsAccessVerdict(allowed=True)
