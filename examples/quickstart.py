"""AgentGate quickstart: check commands with the Guard, then ask a model."""

import asyncio

from agentgate import AgentSession, ShellGuard, TrustLevel, create_driver, get_policy

guard = ShellGuard()
for command in ("git status", "rm -rf /", "curl https://example.com"):
    verdict = guard.evaluate(command, TrustLevel.SANDBOXED)
    print(f"{command!r}: {'allowed' if verdict.allowed else 'blocked'} {verdict.reason or ''}")


async def main() -> None:
    async with AgentSession(".", get_policy("default"), driver=create_driver("mock")) as session:
        result = await session.run("Summarize this repository")
        print(f"\n{result.text}")


asyncio.run(main())
