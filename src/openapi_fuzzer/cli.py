"""CLI entry point for openapi-fuzzer."""

import logging
import signal
from pathlib import Path

import click
from pydantic import ValidationError

from openapi_fuzzer.config import FuzzConfig
from openapi_fuzzer.errors import RequestBuildError, SpecLoadError
from openapi_fuzzer.parser.openapi import load_spec
from openapi_fuzzer.runner.loop import FuzzLoop, FuzzResult, Outcome
from openapi_fuzzer.runner.report import JsonlReporter


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def _echo_result(result: FuzzResult) -> None:
    """Terse console output: a dot per ok response, a block per anomaly."""
    if result.outcome == Outcome.OK:
        click.echo(".", nl=False)
    elif result.outcome == Outcome.ANOMALY and result.anomaly is not None:
        click.echo("")
        click.echo(result.anomaly.describe())


@click.group()
def main():
    """OpenAPI Fuzzer: send schema-conforming random requests and flag undeclared responses."""
    pass


@main.command()
@click.option("-s", "--spec", "spec_path", required=True, envvar="OPENAPI_FUZZER_SPEC", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Path to OpenAPI specification.")
@click.option("-u", "--url", required=True, envvar="OPENAPI_FUZZER_URL", help="Base URL of the API to fuzz.")
@click.option("--passes", default=None, type=int, envvar="OPENAPI_FUZZER_PASSES", help="Stop after this many passes (default: run until interrupted).")
@click.option("--workers", default=1, show_default=True, type=int, envvar="OPENAPI_FUZZER_WORKERS", help="Concurrent fuzz workers.")
@click.option("--timeout", default=10.0, show_default=True, type=float, envvar="OPENAPI_FUZZER_TIMEOUT", help="Per-request timeout in seconds.")
@click.option("--seed", default=None, type=int, envvar="OPENAPI_FUZZER_SEED", help="Seed for reproducible payloads.")
@click.option("--max-depth", default=8, show_default=True, type=int, envvar="OPENAPI_FUZZER_MAX_DEPTH", help="Maximum schema nesting depth.")
@click.option("--report", default=None, envvar="OPENAPI_FUZZER_REPORT", type=click.Path(dir_okay=False, path_type=Path), help="Append anomalies to this JSON Lines file.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
def run(spec_path: Path, url: str, passes: int | None, workers: int, timeout: float, seed: int | None, max_depth: int, report: Path | None, verbose: bool):
    """Fuzz every operation in SPEC against the API at URL."""
    _configure_logging(verbose)

    try:
        config = FuzzConfig(
            max_passes=passes,
            workers=workers,
            timeout=timeout,
            seed=seed,
            max_depth=max_depth,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e

    click.echo(f"Loading {spec_path}...")
    try:
        document = load_spec(spec_path)
    except SpecLoadError as e:
        raise click.ClickException(f"invalid specification {spec_path}: {e}") from e

    reporter = JsonlReporter(report) if report else None
    try:
        try:
            loop = FuzzLoop(document, url, config, on_result=_echo_result, reporter=reporter)
        except RequestBuildError as e:
            raise click.ClickException(f"invalid URL: {e}") from e

        previous = signal.signal(signal.SIGTERM, lambda signum, frame: loop.stop())
        try:
            click.echo(f"Fuzzing {url} ({len(loop.work_items())} operations)...")
            stats = loop.run()
        finally:
            signal.signal(signal.SIGTERM, previous)
    finally:
        if reporter is not None:
            reporter.close()

    summary = stats.as_dict()
    click.echo("")
    click.echo(
        f"Done! {summary['passes']} passes, {summary['requests']} requests, "
        f"{summary['anomalies']} anomalies, "
        f"{summary['generation_errors'] + summary['request_errors']} errors"
    )
    if reporter is not None:
        click.echo(f"Anomalies saved to {report}")
