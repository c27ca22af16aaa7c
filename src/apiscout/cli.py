"""
APIScout command-line interface.

Usage:
    apiscout scan example.com
    apiscout scan example.com --max-pages 200 --no-javascript --output result.json
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import pydantic
import structlog
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .core.config import CrawlMode, ScannerConfig
from .core.exceptions import ApiScoutError
from .core.models import CrawlResult, ScanProgress
from .core.orchestrator import CrawlOrchestrator
from .discovery import default_strategies, load_catalogs


console = Console()


def configure_logging(verbose: int):
    """Warnings only by default; -v for info, -vv for debug"""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


@click.group()
@click.version_option(version=__version__, prog_name="APIScout")
@click.option('-v', '--verbose', count=True, help='Increase log verbosity (-v, -vv)')
def cli(verbose: int):
    """
    APIScout - API Endpoint Discovery

    Crawls a website and reports the API endpoints it exposes.
    """
    configure_logging(verbose)


@cli.command()
@click.argument('domain')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False), help='YAML configuration file')
@click.option('--max-pages', type=int, help='Page budget (default: 2000)')
@click.option('--max-depth', type=int, help='Maximum crawl depth (default: 8)')
@click.option('--concurrency', type=int, help='Maximum concurrent fetches (default: 16)')
@click.option('--delay', type=int, help='Minimum milliseconds between requests (default: 100)')
@click.option('--timeout', type=int, help='Page timeout in milliseconds (default: 10000)')
@click.option('--mode', type=click.Choice([m.value for m in CrawlMode]), help='Frontier order')
@click.option('--javascript/--no-javascript', default=None, help='Render pages in a headless browser')
@click.option('--headless/--no-headless', default=None, help='Run the browser headless')
@click.option('--robots/--no-robots', default=None, help='Honour robots.txt Disallow rules')
@click.option('--external/--no-external', default=None, help='Follow links to other hosts')
@click.option('--output', type=click.Path(), help='Save the result to a JSON file')
def scan(
    domain: str,
    config_path: Optional[str],
    max_pages: Optional[int],
    max_depth: Optional[int],
    concurrency: Optional[int],
    delay: Optional[int],
    timeout: Optional[int],
    mode: Optional[str],
    javascript: Optional[bool],
    headless: Optional[bool],
    robots: Optional[bool],
    external: Optional[bool],
    output: Optional[str],
):
    """
    Discover the API endpoints of DOMAIN.

    Command-line options override values from --config.

    Example:
        apiscout scan example.com
        apiscout scan example.com --config scan.yaml --no-javascript
    """
    overrides = {
        "max_pages": max_pages,
        "max_depth": max_depth,
        "max_concurrency": concurrency,
        "crawl_delay": delay,
        "timeout": timeout,
        "crawl_mode": CrawlMode(mode) if mode else None,
        "enable_javascript": javascript,
        "headless": headless,
        "respect_robots": robots,
        "include_external_links": external,
    }

    try:
        base = ScannerConfig.from_yaml(config_path) if config_path else ScannerConfig()
        config = ScannerConfig.model_validate(
            {**base.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
    except pydantic.ValidationError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red]\n{e}")
        sys.exit(2)

    console.print("\n" + "=" * 80)
    console.print("APIScout - API Endpoint Discovery")
    console.print("=" * 80 + "\n")

    console.print(f"[green]Domain:[/green] {domain}")
    console.print(f"[green]Max Pages:[/green] {config.max_pages}")
    console.print(f"[green]Max Depth:[/green] {config.max_depth} ({config.crawl_mode.value})")
    console.print(f"[green]Concurrency:[/green] {config.max_concurrency}")
    console.print(f"[green]JavaScript:[/green] {'[bold green]Enabled[/bold green]' if config.enable_javascript else '[dim]Disabled[/dim]'}")
    console.print(f"[green]Crawl Delay:[/green] {config.crawl_delay}ms")
    console.print()

    result = asyncio.run(run_scan(domain, config))

    print_summary(result)

    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)

        console.print(f"\n[green]Results saved to:[/green] {output_path}")


async def run_scan(domain: str, config: ScannerConfig) -> CrawlResult:
    """
    Run one discovery session with a live progress bar.
    """
    orchestrator = CrawlOrchestrator(config)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task("[cyan]Initializing scan...", total=100)

            def on_progress(event: ScanProgress):
                progress.update(
                    task,
                    completed=event.progress,
                    description=f"[cyan]{event.stage.value}[/cyan] {event.message} "
                                f"({event.pages_scanned} pages, {event.endpoints_found} endpoints)",
                )

            orchestrator.subscribe(on_progress)
            return await orchestrator.run(domain)

    except KeyboardInterrupt:
        console.print("\n\n[yellow]Scan interrupted by user[/yellow]")
        sys.exit(1)

    except ApiScoutError as e:
        console.print(f"\n[bold red]Scan failed ({e.kind}):[/bold red] {e.message}")
        sys.exit(1)


def print_summary(result: CrawlResult):
    console.print("\n" + "=" * 80)
    stats = result.stats
    console.print(
        f"[bold]{len(result.endpoints)}[/bold] endpoints on [bold]{result.total_pages}[/bold] pages "
        f"in {result.total_time / 1000:.1f}s ({stats.requests_made} requests, {len(result.errors)} errors)"
    )

    if not result.endpoints:
        return

    table = Table(title=f"Endpoints - {result.domain}")
    table.add_column("Method", style="cyan", no_wrap=True)
    table.add_column("URL", style="white")
    table.add_column("Source", style="magenta")
    table.add_column("Status", style="green")
    table.add_column("Risk", style="yellow")

    risk_colors = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}

    for endpoint in sorted(result.endpoints, key=lambda e: (e.url, e.method.value)):
        risk = endpoint.security.risk_level.value
        status = str(endpoint.response.status) if endpoint.response and endpoint.response.status else "-"
        table.add_row(
            endpoint.method.value,
            endpoint.url,
            endpoint.source.value,
            status,
            f"[{risk_colors[risk]}]{risk.upper()}[/]",
        )

    console.print(table)


@cli.command()
@click.option('--path', 'catalog_path', type=click.Path(exists=True, dir_okay=False), help='Alternative catalogs.yaml')
def catalog(catalog_path: Optional[str]):
    """Show the probe catalogs used by the discovery strategies"""
    try:
        catalogs = load_catalogs(catalog_path)
    except ValueError as e:
        console.print(f"[bold red]Invalid catalog:[/bold red] {e}")
        sys.exit(2)

    table = Table(title="Probe Catalogs")
    table.add_column("Section", style="cyan", no_wrap=True)
    table.add_column("Entries", style="green", justify="right")

    for section, size in catalogs.sizes().items():
        table.add_row(section, str(size))

    console.print(table)


@cli.command()
def version():
    """Show version information and discovery strategies"""
    console.print(f"\n[bold cyan]APIScout v{__version__}[/bold cyan]")
    console.print("[cyan]API Endpoint Discovery[/cyan]\n")

    table = Table(title="Discovery Strategies")
    table.add_column("Strategy", style="cyan", no_wrap=True)
    table.add_column("Phase", style="green")

    for strategy in default_strategies():
        table.add_row(strategy.name, "after crawl" if strategy.run_after_crawl else "before crawl")

    console.print(table)
    console.print()

