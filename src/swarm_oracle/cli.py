"""CLI entry point for the swarm oracle."""

from __future__ import annotations

import click


def _overrides(markets: str | None, storage: str | None) -> dict:
    overrides: dict = {}
    if markets:
        overrides["orchestrator"] = {"markets": markets.split(",")}
    if storage:
        overrides["storage"] = {"backend": storage}
    return overrides


@click.group()
def main() -> None:
    """Swarm Oracle multi-agent market predictor."""


@main.command()
@click.option("--config", default=None, help="Config file path")
@click.option("--markets", default=None, help="Comma-separated market universe override")
@click.option(
    "--storage",
    type=click.Choice(["memory", "postgres", "redis"]),
    default=None,
    help="Persistence backend override",
)
def run(config: str | None, markets: str | None, storage: str | None) -> None:
    """Run the swarm until interrupted."""
    import asyncio

    from .main import run as run_swarm

    asyncio.run(run_swarm(config_path=config, overrides=_overrides(markets, storage)))


@main.command()
@click.argument("market")
@click.option("--config", default=None, help="Config file path")
@click.option(
    "--storage",
    type=click.Choice(["memory", "postgres", "redis"]),
    default=None,
    help="Persistence backend override",
)
def predict(market: str, config: str | None, storage: str | None) -> None:
    """Run one prediction pass for MARKET and print the outcome as JSON."""
    import asyncio

    from .main import run_once

    outcome = asyncio.run(
        run_once(market, config_path=config, overrides=_overrides(None, storage))
    )
    click.echo(outcome.model_dump_json(indent=2, exclude={"snapshot": {"observations"}}))
    if outcome.risk is not None:
        click.echo(f"Decision: {outcome.risk.recommendation.value} for {market}")
    else:
        click.echo(f"No execution for {market} (stopped at {outcome.stage_reached})")


@main.command()
@click.option("--config", default=None, help="Config file path")
def agents(config: str | None) -> None:
    """List the configured agent roster."""
    from .core.config import load_settings

    settings = load_settings(config_path=config)
    rows = [
        *(("collector", c.agent_id, c.source.value, c.enabled) for c in settings.collectors),
        *(("analyst", a.agent_id, a.specialty.value, a.enabled) for a in settings.analysts),
        *(("deliberator", d.agent_id, d.kind.value, d.enabled) for d in settings.deliberators),
        *(("executor", e.agent_id, e.kind.value, e.enabled) for e in settings.executors),
    ]
    for role, agent_id, kind, enabled in rows:
        flag = "" if enabled else "  (disabled)"
        click.echo(f"{role:<12} {agent_id:<24} {kind}{flag}")


if __name__ == "__main__":
    main()
