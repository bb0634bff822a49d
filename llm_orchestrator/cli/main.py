"""
CLI interface for the LLM orchestration core.

Operator access to routing, cost estimation, budget checks and managed
prompts backed by the local SQLite store.
"""

import asyncio
import logging
import sqlite3
import sys
from typing import Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from llm_orchestrator.config.loader import (
    OrchestratorConfig,
    default_config,
    load_orchestrator_config,
)
from llm_orchestrator.core.errors import OrchestrationError
from llm_orchestrator.core.guardrails import BudgetGuard
from llm_orchestrator.core.pricing import CostEstimator
from llm_orchestrator.core.router import ModelRouter
from llm_orchestrator.core.token_counter import CharacterTokenEstimator
from llm_orchestrator.events.dispatcher import InMemoryEventDispatcher
from llm_orchestrator.prompts.models import render_template
from llm_orchestrator.storage.db import DEFAULT_DB_PATH, initialize_schema
from llm_orchestrator.storage.prompt_repository import SqlitePromptRepository
from llm_orchestrator.storage.repository import SqliteUsageRepository
from llm_orchestrator.usecases.prompts import (
    create_managed_prompt,
    get_managed_prompt,
    get_prompt_version_history,
    rollback_managed_prompt,
    update_managed_prompt,
)

app = typer.Typer()
prompt_app = typer.Typer(help="Manage versioned prompt templates.")
app.add_typer(prompt_app, name="prompt")
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

# Shared between commands of one invocation
_state: Dict[str, Optional[str]] = {"db_path": DEFAULT_DB_PATH, "config_path": None}


def _load_config() -> OrchestratorConfig:
    if _state["config_path"]:
        return load_orchestrator_config(_state["config_path"])
    return default_config()


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/] {escape(str(error))}")
    sys.exit(EXIT_CODE_FAIL)


def _parse_vars(pairs: List[str]) -> Dict[str, str]:
    values = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected NAME=VALUE, got '{pair}'")
        values[name] = value
    return values


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
    config_path: Optional[str] = typer.Option(None, "--config", help="YAML configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """LLM orchestration core CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["db_path"] = db_path
    _state["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        console.print("LLM Orchestrator - Use --help to see available commands")


@app.command()
def init():
    """Initialize the SQLite database."""
    try:
        initialize_schema(_state["db_path"])
    except sqlite3.Error as e:
        _fail(e)
    console.print("[green]✓[/] Database initialized successfully")


@app.command()
def models():
    """List the configured model catalog."""
    try:
        config = _load_config()
    except (OSError, ValueError, yaml.YAMLError) as e:
        _fail(e)

    table = Table(title="Model Catalog")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("$/1K in", justify="right")
    table.add_column("$/1K out", justify="right")
    table.add_column("Max tokens", justify="right")
    table.add_column("Capabilities")
    table.add_column("Enabled")
    for m in ModelRouter(config.models).get_all_models():
        table.add_row(
            m.provider.value,
            m.model,
            f"{m.cost_per_1k_in:.6f}",
            f"{m.cost_per_1k_out:.6f}",
            f"{m.max_tokens:,}",
            ", ".join(sorted(m.capabilities)),
            "yes" if m.enabled else "[dim]no[/]",
        )
    console.print(table)


@app.command()
def select(
    capability: List[str] = typer.Option([], "--capability", "-c", help="Required capability"),
    strategy: str = typer.Option("cheapest", "--strategy", "-s", help="cheapest, fastest or round-robin"),
    max_budget: Optional[float] = typer.Option(None, "--max-budget", "-b", help="Max cost per 1K input tokens"),
    provider: List[str] = typer.Option([], "--provider", "-p", help="Preferred provider"),
):
    """Select a model for the given constraints."""
    try:
        router = ModelRouter(_load_config().models)
        selected = router.select_optimal_model(
            capabilities=capability,
            strategy=strategy,
            max_budget=max_budget,
            preferred_providers=provider or None,
        )
    except (OrchestrationError, OSError, ValueError, yaml.YAMLError) as e:
        _fail(e)

    cost = selected.estimated_cost_per_1k_tokens
    console.print(f"[bold]Selected:[/bold] {selected.provider.value}/{selected.model}")
    console.print(f"Cost per 1K tokens: in ${cost.input:.6f}, out ${cost.output:.6f}")


@app.command()
def estimate(
    text: str = typer.Argument(..., help="Text to estimate"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Price a single model"),
):
    """Estimate the cost of sending a piece of text."""
    try:
        estimator = CostEstimator(ModelRouter(_load_config().models), CharacterTokenEstimator())
        result = asyncio.run(estimator.estimate_cost(text, model))
    except (OrchestrationError, OSError, ValueError, yaml.YAMLError) as e:
        _fail(e)

    cost = result.estimated_cost
    console.print(f"Estimated tokens: {result.estimated_tokens}")
    if cost.min == cost.max:
        console.print(f"Estimated cost: ${cost.min:.6f} {cost.currency}")
    else:
        console.print(f"Estimated cost: ${cost.min:.6f} - ${cost.max:.6f} {cost.currency}")


@app.command()
def budget(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Check a single user's spend"),
    cost: float = typer.Option(0.0, "--cost", help="Prospective cost to check"),
):
    """Show spend-to-date against the budget limits."""
    try:
        guard = BudgetGuard(SqliteUsageRepository(_state["db_path"]), _load_config().budget)
        snapshot = asyncio.run(guard.check_budget(user, cost))
    except (OrchestrationError, OSError, ValueError, yaml.YAMLError, sqlite3.Error) as e:
        _fail(e)

    table = Table(title=f"Budget ({user or 'global'})")
    table.add_column("Period")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_row("Daily", f"${snapshot.daily_used:,.4f}", f"${snapshot.daily_limit:,.2f}",
                  f"${snapshot.remaining_budget.daily:,.4f}")
    table.add_row("Monthly", f"${snapshot.monthly_used:,.4f}", f"${snapshot.monthly_limit:,.2f}",
                  f"${snapshot.remaining_budget.monthly:,.4f}")
    console.print(table)

    if snapshot.can_proceed:
        console.print("[green]✓[/] Within budget")
    else:
        console.print("[red]✗[/] Budget exceeded")
        sys.exit(EXIT_CODE_FAIL)


@prompt_app.command("create")
def prompt_create(
    key: str = typer.Argument(..., help="Slug key, unique per environment"),
    name: str = typer.Option(..., "--name", "-n"),
    template: str = typer.Option(..., "--template", "-t"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    environment: str = typer.Option("development", "--env", "-e"),
):
    """Create a managed prompt at version 1."""
    try:
        details = asyncio.run(create_managed_prompt(
            key=key,
            name=name,
            template=template,
            repository=SqlitePromptRepository(_state["db_path"]),
            dispatcher=InMemoryEventDispatcher(),
            description=description,
            environment=environment,
        ))
    except (OrchestrationError, sqlite3.Error) as e:
        _fail(e)

    console.print(f"[green]✓[/] Created prompt {details.id} (version {details.version})")
    console.print(f"Variables: {', '.join(v.name for v in details.variables) or '-'}")


@prompt_app.command("update")
def prompt_update(
    prompt_id: str = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    template: Optional[str] = typer.Option(None, "--template", "-t"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
):
    """Update a managed prompt, creating a new version."""
    try:
        result = asyncio.run(update_managed_prompt(
            prompt_id,
            SqlitePromptRepository(_state["db_path"]),
            InMemoryEventDispatcher(),
            name=name,
            description=description,
            template=template,
        ))
    except (OrchestrationError, sqlite3.Error) as e:
        _fail(e)

    console.print(f"[green]✓[/] Version {result.previous_version} -> {result.version}")


@prompt_app.command("rollback")
def prompt_rollback(
    prompt_id: str = typer.Argument(...),
    version: int = typer.Argument(..., help="Version to restore"),
):
    """Restore a previously stored version."""
    try:
        result = asyncio.run(rollback_managed_prompt(
            prompt_id,
            version,
            SqlitePromptRepository(_state["db_path"]),
            InMemoryEventDispatcher(),
        ))
    except (OrchestrationError, sqlite3.Error) as e:
        _fail(e)

    console.print(
        f"[green]✓[/] Rolled back from version {result.rolled_back_from} "
        f"to {result.current_version}"
    )


@prompt_app.command("render")
def prompt_render(
    prompt_id: str = typer.Argument(...),
    var: List[str] = typer.Option([], "--var", help="Variable as NAME=VALUE"),
):
    """Render a managed prompt with variables."""
    values = _parse_vars(var)
    try:
        details = asyncio.run(get_managed_prompt(prompt_id, SqlitePromptRepository(_state["db_path"])))
        rendered = render_template(details.template, details.variables, values)
    except (OrchestrationError, sqlite3.Error) as e:
        _fail(e)

    console.print(rendered, markup=False)


@prompt_app.command("history")
def prompt_history(prompt_id: str = typer.Argument(...)):
    """List stored versions of a managed prompt."""
    try:
        history = asyncio.run(
            get_prompt_version_history(prompt_id, SqlitePromptRepository(_state["db_path"]))
        )
    except (OrchestrationError, sqlite3.Error) as e:
        _fail(e)

    table = Table(title="Version History")
    table.add_column("Version", justify="right")
    table.add_column("Name")
    table.add_column("Template")
    table.add_column("Stored at")
    for snapshot in history:
        table.add_row(
            str(snapshot.version),
            escape(snapshot.name),
            escape(snapshot.template),
            snapshot.created_at.isoformat(timespec="seconds"),
        )
    console.print(table)


if __name__ == "__main__":
    app()
