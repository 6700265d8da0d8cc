"""
Command-line interface for dnsstress.

Sends DNS requests as fast as possible to a given server and
displays the rate. Every option can also be set through an
environment variable prefixed with ``DNSSTRESS_``.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .models import ConfigError, RecordType, StressConfig
from .output import JSONOutput, RichConsoleOutput
from .resolvers import (
    list_resolvers,
    normalize_domain,
    resolve_doh_option,
    resolve_resolver_option,
)
from .runner import StressRunner

logger = logging.getLogger(__name__)

EXIT_USAGE = 1
EXIT_CONFIG = 2


def setup_logging(verbose: bool) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_until_interrupted(runner: StressRunner):
    """Run with SIGINT/SIGTERM wired to a graceful stop."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: KeyboardInterrupt still ends the run
            pass
    return await runner.run(stop)


@click.command(
    context_settings={"auto_envvar_prefix": "DNSSTRESS", "help_option_names": ["-h", "--help"]},
)
@click.argument("domains", nargs=-1)
@click.option(
    "--concurrency",
    type=int,
    default=50,
    show_default=True,
    help="Number of concurrent workers (also the stats queue size)",
)
@click.option(
    "--display-interval", "-d",
    type=int,
    default=1000,
    show_default=True,
    help="Update interval of the stats (in ms)",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Verbose logging",
)
@click.option(
    "--random",
    "random_ids",
    is_flag=True,
    help="Use random Request Identifiers for each query",
)
@click.option(
    "--iterative", "-i",
    is_flag=True,
    help="Do an iterative query instead of recursive (to stress authoritative nameservers)",
)
@click.option(
    "--resolver", "-r",
    default="127.0.0.1:53",
    show_default=True,
    help="Resolver to test against (ip[:port] or one of: " + ", ".join(list_resolvers()) + ")",
)
@click.option(
    "--flood", "-f",
    is_flag=True,
    help="Don't wait for an answer before sending another",
)
@click.option(
    "--doh",
    help="DOH endpoint to use for DNS over HTTPS requests (URL or resolver name)",
)
@click.option(
    "--batch-size", "-b",
    type=int,
    default=5,
    show_default=True,
    help="Queries per worker between two stats updates",
)
@click.option(
    "--type", "-t",
    "record_type",
    type=click.Choice([t.value for t in RecordType], case_sensitive=False),
    default="A",
    show_default=True,
    help="Record type to query",
)
@click.option(
    "--timeout",
    type=float,
    help="Per-query timeout in seconds (default: wait forever)",
)
@click.option(
    "--duration",
    type=float,
    help="Stop after this many seconds (default: run until interrupted)",
)
@click.option(
    "--batches",
    type=int,
    help="Stop each worker after this many batches",
)
@click.option(
    "--flood-limit",
    type=int,
    help="Maximum unanswered queries per worker in flood mode (default: unlimited)",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the run summary as JSON to stdout when done",
)
@click.version_option(__version__)
@click.pass_context
def main(
    ctx: click.Context,
    domains: tuple,
    concurrency: int,
    display_interval: int,
    verbose: bool,
    random_ids: bool,
    iterative: bool,
    resolver: str,
    flood: bool,
    doh: Optional[str],
    batch_size: int,
    record_type: str,
    timeout: Optional[float],
    duration: Optional[float],
    batches: Optional[int],
    flood_limit: Optional[int],
    as_json: bool,
):
    """
    Send DNS requests as fast as possible to a given server and display the rate.

    Examples:

    \b
      # Stress the local resolver with 100 workers
      dnsstress --concurrency 100 example.com

    \b
      # Random query ids against a public resolver for 30 seconds
      dnsstress -r 9.9.9.9 --random --duration 30 example.com example.org

    \b
      # DNS over HTTPS
      dnsstress --doh https://cloudflare-dns.com/dns-query example.com
    """
    setup_logging(verbose)
    if as_json:
        # Keep stdout for the JSON summary
        output = RichConsoleOutput(Console(stderr=True, highlight=False))
    else:
        output = RichConsoleOutput()

    # We need at least one target domain
    if not domains:
        click.echo(ctx.get_help(), err=True)
        ctx.exit(EXIT_USAGE)

    try:
        target_domains = [normalize_domain(d) for d in domains]
        doh_endpoint = resolve_doh_option(doh) if doh else None
    except ConfigError as e:
        output.error("Invalid option", e)
        ctx.exit(EXIT_CONFIG)

    parsed_resolver = resolver
    if not doh_endpoint:
        try:
            parsed_resolver = resolve_resolver_option(resolver)
        except ConfigError as e:
            output.error("Unable to parse the resolver address", e)
            ctx.exit(EXIT_CONFIG)

    try:
        config = StressConfig(
            resolver=parsed_resolver,
            doh_endpoint=doh_endpoint,
            concurrency=concurrency,
            batch_size=batch_size,
            display_interval_ms=display_interval,
            verbose=verbose,
            iterative=iterative,
            random_ids=random_ids,
            flood=flood,
            record_type=RecordType(record_type.upper()),
            timeout=timeout,
            duration=duration,
            max_batches=batches,
            flood_limit=flood_limit,
        )
    except ConfigError as e:
        output.error("Invalid option", e)
        ctx.exit(EXIT_CONFIG)

    output.banner(config, target_domains)

    runner = StressRunner(
        config,
        target_domains,
        reporter=output.interval,
        on_warning=output.warning,
        on_info=output.info,
    )
    try:
        summary = asyncio.run(run_until_interrupted(runner))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)

    if as_json:
        click.echo(JSONOutput.format(summary))
    else:
        output.summary(summary)


if __name__ == "__main__":
    main()
