"""switchboard command line: a thin shell around ProviderAdapter."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import click

from switchboard.auth.store import CredentialStore
from switchboard.config import Settings, load_settings
from switchboard.core.llm import (
    LLMResponse,
    Message,
    ProviderAdapter,
    ToolDefinition,
    create_provider,
)
from switchboard.errors import SwitchboardError
from switchboard.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


def _adapter(settings: Settings) -> ProviderAdapter:
    try:
        return create_provider(settings)
    except SwitchboardError as e:
        raise click.ClickException(str(e)) from e


def _load_tools(path: str) -> list[ToolDefinition]:
    """Read a JSON list of OpenAI-style function tool definitions."""
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise click.BadParameter(f"cannot read tools file: {e}", param_hint="--tools") from e
    if not isinstance(data, list):
        raise click.BadParameter("tools file must hold a JSON list", param_hint="--tools")
    try:
        return [ToolDefinition.from_openai(item) for item in data]
    except (KeyError, TypeError, AttributeError) as e:
        raise click.BadParameter(f"invalid tool definition: {e}", param_hint="--tools") from e


async def _chat(
    adapter: ProviderAdapter,
    messages: list[Message],
    tools: list[ToolDefinition],
    model: str | None,
    options: dict[str, Any],
) -> LLMResponse:
    try:
        return await adapter.chat(messages, tools=tools, model=model, options=options)
    finally:
        await adapter.close()


async def _status(adapter: ProviderAdapter) -> dict[str, str]:
    try:
        resolved = await adapter.resolver.resolve()
    finally:
        await adapter.close()
    return {
        "backend": adapter.kind.value,
        "source": resolved.source,
        "auth_method": resolved.auth_method.value,
        "account_id": resolved.account_id,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option(
    "--provider",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="Backend family (openai uses Azure when AZURE_OPENAI_* is set)",
)
@click.option("--verbose", is_flag=True, help="Trace credential resolution")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    log_level: str | None,
    provider: str | None,
    verbose: bool,
) -> None:
    """Talk to an LLM backend through one interface."""
    llm: dict[str, Any] = {}
    if provider:
        llm["provider"] = provider
    if verbose:
        llm["verbose_auth"] = True
    settings = load_settings(config_path, {"llm": llm} if llm else None)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    ctx.obj = settings


@cli.command()
@click.argument("prompt")
@click.option("--system", default=None, help="System prompt")
@click.option("--model", default=None, help="Model (defaults to the backend's default)")
@click.option("--max-tokens", type=int, default=None)
@click.option("--temperature", type=float, default=None)
@click.option(
    "--tools",
    "tools_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON file with a list of OpenAI-style function tools",
)
@click.pass_obj
def chat(
    settings: Settings,
    prompt: str,
    system: str | None,
    model: str | None,
    max_tokens: int | None,
    temperature: float | None,
    tools_path: str | None,
) -> None:
    """Send one prompt and print the reply."""
    tools = _load_tools(tools_path) if tools_path else []
    messages: list[Message] = []
    if system:
        messages.append(Message(role="system", content=system))
    messages.append(Message(role="user", content=prompt))

    options: dict[str, Any] = {}
    if max_tokens is not None:
        options["max_tokens"] = max_tokens
    if temperature is not None:
        options["temperature"] = temperature

    adapter = _adapter(settings)
    try:
        response = asyncio.run(_chat(adapter, messages, tools, model, options))
    except SwitchboardError as e:
        raise click.ClickException(str(e)) from e

    if response.content:
        click.echo(response.content)
    for tc in response.tool_calls:
        click.echo(f"[tool call {tc.id}] {tc.name} {json.dumps(tc.arguments)}")
    if response.usage is not None:
        log.info(
            "chat_usage",
            finish_reason=response.finish_reason.value,
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
        )


@cli.command()
@click.pass_obj
def model(settings: Settings) -> None:
    """Print the default model of the configured backend."""
    adapter = _adapter(settings)
    click.echo(adapter.get_default_model())
    asyncio.run(adapter.close())


@cli.group()
def auth() -> None:
    """Credential inspection and cleanup."""


@auth.command("status")
@click.pass_obj
def auth_status(settings: Settings) -> None:
    """Show which credential source resolves (the secret is never printed)."""
    adapter = _adapter(settings)
    try:
        status = asyncio.run(_status(adapter))
    except SwitchboardError as e:
        raise click.ClickException(str(e)) from e
    for key, value in status.items():
        click.echo(f"{key}: {value or '-'}")


@auth.command("logout")
@click.pass_obj
def auth_logout(settings: Settings) -> None:
    """Forget the stored OAuth credential of the configured provider."""
    provider = settings.llm.provider
    store = CredentialStore(settings.credentials_path())
    if asyncio.run(store.delete(provider)):
        click.echo(f"removed stored credential for {provider}")
    else:
        click.echo(f"no stored credential for {provider}")


if __name__ == "__main__":
    cli()
