"""
Namespaced MCP tool names.

Tools are advertised to models as ``mcp__<server>__<tool>``. The server
part may contain single underscores but never a double underscore, so
the first ``__`` after the server name is always the separator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from agentgate.exceptions import ToolNameError

PREFIX = "mcp"
SEPARATOR = "__"

_NAME_RE = re.compile(r"^mcp__([A-Za-z0-9](?:[A-Za-z0-9.\-]|_(?!_))*)__(\S+)$")


@dataclass(frozen=True)
class NamespacedTool:
    """A (server, tool) pair parsed from or rendered to a namespaced name."""

    server: str
    tool: str

    @classmethod
    def parse(cls, name: str) -> NamespacedTool:
        """Parse ``mcp__<server>__<tool>``.

        Raises:
            ToolNameError: If the name does not follow the pattern.
        """
        match = _NAME_RE.match(name or "")
        if not match:
            raise ToolNameError(name)
        return cls(server=match.group(1), tool=match.group(2))

    @property
    def qualified_name(self) -> str:
        return f"{PREFIX}{SEPARATOR}{self.server}{SEPARATOR}{self.tool}"

    def __str__(self) -> str:
        return self.qualified_name
