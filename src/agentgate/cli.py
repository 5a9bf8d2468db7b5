"""
AgentGate CLI

Command-line entry point for operating the core by hand.

Commands:
    agentgate check "rm -rf /"            Evaluate a command with the Guard
    agentgate check --trust untrusted CMD Evaluate at another trust level
    agentgate tools [--server NAME]       List tools on the MCP gateway
    agentgate chat "prompt"               One prompt through the tool loop

Settings come from AGENTGATE_* environment variables (see agentgate.settings).
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

import click

from agentgate import __version__
from agentgate.drivers import create_driver
from agentgate.engine import AgentSession
from agentgate.exceptions import AgentGateError
from agentgate.logging import configure_logging
from agentgate.mcp import McpClient, McpClientConfig, ToolRegistry
from agentgate.observability import init_tracing
from agentgate.policies import TrustLevel, get_policy
from agentgate.sandbox import ShellGuard
from agentgate.settings import Settings

_TRUST_CHOICES = [t.value for t in TrustLevel]


def _print_header(title: str) -> None:
    click.echo()
    click.echo(f"  {title}")
    click.echo(f"  {'─' * len(title)}")


def _mcp_client(settings: Settings) -> McpClient:
    return McpClient(
        McpClientConfig(
            gateway_url=settings.mcp_gateway_url,
            api_key=settings.mcp_api_key,
            timeout_seconds=settings.mcp_timeout_seconds,
        )
    )


@click.group()
@click.version_option(version=__version__, prog_name="agentgate")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """AgentGate: policy-gated orchestration for coding agents."""
    settings = Settings.from_env()
    configure_logging(level=settings.log_level, json_output=settings.log_json)
    init_tracing()
    ctx.obj = settings


@cli.command()
@click.argument("command")
@click.option(
    "--trust",
    type=click.Choice(_TRUST_CHOICES),
    default=TrustLevel.SANDBOXED.value,
    show_default=True,
    help="Trust level to evaluate at",
)
@click.option("--lenient", is_flag=True, help="Non-strict mode: apply rewrite rules")
@click.option("--json-output", is_flag=True, help="Output the verdict as JSON")
def check(command: str, trust: str, lenient: bool, json_output: bool) -> None:
    """Evaluate COMMAND with the Guard. Exits 1 if it is blocked."""
    guard = ShellGuard()
    level = TrustLevel(trust)
    verdict = guard.evaluate(command, level, strict=not lenient)

    if json_output:
        click.echo(json.dumps(verdict.model_dump(mode="json"), indent=2))
    else:
        _print_header("Guard Verdict")
        click.echo(f"  Command: {command}")
        click.echo(f"  Trust: {level.value}")
        click.echo(f"  Allowed: {'yes' if verdict.allowed else 'no'}")
        if verdict.reason:
            click.echo(f"  Reason: {verdict.reason}")
        if verdict.severity:
            click.echo(f"  Severity: {verdict.severity.value}")
        if verdict.rewritten:
            click.echo(f"  Rewritten: {verdict.rewritten}")
        if verdict.allowed:
            click.echo(f"  Timeout: {verdict.timeout_seconds}s")
        else:
            suggestion = guard.suggest_alternative(command)
            if suggestion:
                click.echo(f"  Suggestion: {suggestion}")

    if not verdict.allowed:
        sys.exit(1)


@cli.command()
@click.option("--server", default=None, help="Only list tools from this server")
@click.pass_obj
def tools(settings: Settings, server: str | None) -> None:
    """List tools available on the MCP gateway."""

    async def _list() -> None:
        async with _mcp_client(settings) as client:
            response = await client.list_tools(server=server)

        _print_header(f"MCP Tools ({settings.mcp_gateway_url})")
        if not response.tools:
            click.echo("  No tools found.")
            return
        for tool in response.tools:
            origin = f"[{tool.server}] " if tool.server else ""
            click.echo(f"  {origin}{tool.name}  {tool.description or ''}".rstrip())
        click.echo(f"\n  Total: {response.total}")

    try:
        asyncio.run(_list())
    except AgentGateError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("prompt")
@click.option("--driver", "driver_name", default="ollama", show_default=True, help="Model driver")
@click.option("--model", default=None, help="Model name (default: AGENTGATE_MODEL)")
@click.option("--policy", "policy_name", default=None, help="Policy preset name")
@click.option("--no-tools", is_flag=True, help="Do not connect to the MCP gateway")
@click.option("--system", "system_prompt", default=None, help="System prompt")
@click.option(
    "--working-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Working directory (default: current directory)",
)
@click.pass_obj
def chat(
    settings: Settings,
    prompt: str,
    driver_name: str,
    model: str | None,
    policy_name: str | None,
    no_tools: bool,
    system_prompt: str | None,
    working_dir: str | None,
) -> None:
    """Send PROMPT through the tool-execution loop and print the answer."""
    try:
        policy = get_policy(policy_name or settings.policy)
    except KeyError as e:
        raise click.BadParameter(str(e.args[0]), param_hint="--policy") from e

    async def _chat() -> str:
        driver = create_driver(
            driver_name,
            model=model or settings.model,
            base_url=settings.ollama_url if driver_name.lower() == "ollama" else None,
            timeout_seconds=settings.driver_timeout_seconds,
        )
        client = None if no_tools else _mcp_client(settings)
        registry = ToolRegistry(client) if client is not None else None
        try:
            if registry is not None:
                await registry.initialize()
            session = AgentSession(
                working_dir or os.getcwd(),
                policy,
                driver=driver,
                registry=registry,
                system_prompt=system_prompt,
            )
            result = await session.run(prompt)
            return result.text
        finally:
            if client is not None:
                await client.aclose()
            await driver.aclose()

    try:
        text = asyncio.run(_chat())
    except KeyboardInterrupt:
        click.echo("\n  Interrupted.", err=True)
        sys.exit(1)
    except AgentGateError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(text)


if __name__ == "__main__":
    cli()
