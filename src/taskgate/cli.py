"""
Command-line interface for taskgate

Provides CLI commands for:
- Simulating a workload: taskgate simulate --tasks 200 --concurrency 10
- Managing configuration: taskgate config --show
"""

import asyncio
import json
import random
import time
from typing import Any, Optional

import click
import yaml

from . import __version__
from .concurrency import Limiter
from .config import get_config
from .observability import initialize_observability, shutdown_observability, trace_async


@click.group()
@click.version_option(version=__version__, prog_name="taskgate")
def cli():
    """taskgate - concurrency-limiting task gate for asyncio"""


@trace_async("taskgate.simulate")
async def run_simulation(
    limiter: Limiter,
    tasks: int,
    min_delay: float,
    max_delay: float,
    fail_every: int = 0,
    rng: Optional[random.Random] = None,
) -> dict[str, Any]:
    """
    Push sleeping tasks through a limiter and report what happened

    Args:
        limiter: Limiter to exercise
        tasks: Number of tasks to submit
        min_delay: Shortest task sleep in seconds
        max_delay: Longest task sleep in seconds
        fail_every: Make every Nth task raise (0 = never)
        rng: Random source for task delays

    Returns:
        Summary with elapsed time, peak concurrency, outcome counts and stats
    """
    rng = rng or random.Random()
    running = 0
    peak = 0

    async def sleeper(index: int) -> int:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        try:
            await asyncio.sleep(rng.uniform(min_delay, max_delay))
            if fail_every and (index + 1) % fail_every == 0:
                raise RuntimeError(f"task {index} failed on purpose")
            return index
        finally:
            running -= 1

    start = time.perf_counter()
    futures = [limiter.submit(sleeper, index) for index in range(tasks)]
    results = await asyncio.gather(*futures, return_exceptions=True)
    elapsed = time.perf_counter() - start

    failed = sum(1 for result in results if isinstance(result, Exception))
    return {
        "tasks": tasks,
        "succeeded": tasks - failed,
        "failed": failed,
        "elapsed": elapsed,
        "throughput": tasks / elapsed if elapsed > 0 else 0.0,
        "peak_concurrency": peak,
        "stats": limiter.get_stats().to_dict(),
    }


@cli.command()
@click.option("--tasks", type=click.IntRange(min=1), default=100, show_default=True, help="Number of tasks to run")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Concurrency ceiling (defaults to configuration)")
@click.option("--min-delay", type=click.FloatRange(min=0.0), default=0.01, show_default=True, help="Shortest task duration in seconds")
@click.option("--max-delay", type=click.FloatRange(min=0.0), default=0.05, show_default=True, help="Longest task duration in seconds")
@click.option("--fail-every", type=click.IntRange(min=0), default=0, show_default=True, help="Make every Nth task fail (0 = never)")
@click.option("--seed", type=int, default=None, help="Random seed for task durations")
def simulate(
    tasks: int,
    concurrency: Optional[int],
    min_delay: float,
    max_delay: float,
    fail_every: int,
    seed: Optional[int],
):
    """Run a simulated workload through a limiter"""
    if min_delay > max_delay:
        raise click.BadParameter("--min-delay must not exceed --max-delay")

    config = get_config()
    initialize_observability(config.telemetry)
    try:
        limiter = config.create_limiter(name="simulate", concurrency=concurrency)
        summary = asyncio.run(
            run_simulation(
                limiter,
                tasks,
                min_delay,
                max_delay,
                fail_every=fail_every,
                rng=random.Random(seed),
            )
        )
    finally:
        shutdown_observability()

    click.echo(f"⏱  Simulated {summary['tasks']} tasks at concurrency {limiter.concurrency}")
    click.echo("=" * 50)
    click.echo(f"Elapsed: {summary['elapsed']:.2f}s")
    click.echo(f"Throughput: {summary['throughput']:.0f} tasks/s")
    click.echo(f"Peak concurrency: {summary['peak_concurrency']}")
    click.echo(f"Succeeded: {summary['succeeded']}")
    if summary["failed"]:
        click.echo(f"❌ Failed: {summary['failed']}")
    else:
        click.echo(f"Failed: {summary['failed']}")
    click.echo(f"Average run time: {summary['stats']['average_run_time'] * 1000:.1f}ms")


@cli.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--format", type=click.Choice(["yaml", "json"]), default="yaml", help="Output format")
def config(show: bool, format: str):
    """Manage taskgate configuration"""
    if show:
        try:
            config_obj = get_config()
            config_dict = config_obj.model_dump(mode="json")

            click.echo("🔧 Current taskgate Configuration")
            click.echo("=" * 40)

            if format == "yaml":
                click.echo(yaml.dump(config_dict, default_flow_style=False, indent=2))
            elif format == "json":
                click.echo(json.dumps(config_dict, indent=2))

        except Exception as e:
            click.echo(f"❌ Failed to load configuration: {e}", err=True)
    else:
        click.echo("Use --show to display current configuration")
        click.echo("Available options:")
        click.echo("  --show          Show current configuration")
        click.echo("  --format yaml   Output in YAML format (default)")
        click.echo("  --format json   Output in JSON format")


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == "__main__":
    main()
