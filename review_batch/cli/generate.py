"""CLI commands for running generation batches."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
from tabulate import tabulate

from review_batch.executor.config import BatchProcessingConfig
from review_batch.executor.dispatcher import BatchExecutor
from review_batch.observability.logging import init_logging
from review_batch.observability.tracing import init_tracing
from review_batch.services.generation_client import GenerationClient, generate_records
from review_batch.settings import get_settings


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level: Optional[str]):
    """Review batch generation commands."""
    settings = get_settings()
    init_logging(log_level or settings.LOG_LEVEL)
    init_tracing(settings.SERVICE_NAME)


@cli.command()
@click.option('--concurrency', type=int, help='Items dispatched per chunk')
@click.option('--retry-attempts', type=int, help='Retries after the first attempt')
@click.option('--rate-limit', type=int, help='Admissions per second between chunks')
def config(concurrency: Optional[int], retry_attempts: Optional[int], rate_limit: Optional[int]):
    """Show the effective batch configuration."""
    batch_config = _build_config(concurrency, retry_attempts, rate_limit)
    rows = [[key, value] for key, value in batch_config.to_dict().items()]
    click.echo(tabulate(rows, headers=["Option", "Value"], tablefmt="grid"))


@cli.command()
@click.argument('prompts_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Write results as JSON lines')
@click.option('--concurrency', type=int, help='Items dispatched per chunk')
@click.option('--retry-attempts', type=int, help='Retries after the first attempt')
@click.option('--rate-limit', type=int, help='Admissions per second between chunks')
def generate(
    prompts_file: Path,
    output: Optional[Path],
    concurrency: Optional[int],
    retry_attempts: Optional[int],
    rate_limit: Optional[int],
):
    """Generate one text per non-empty line of PROMPTS_FILE."""
    prompts = [
        line.strip()
        for line in prompts_file.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
    if not prompts:
        raise click.UsageError(f"No prompts found in {prompts_file}")

    settings = get_settings()
    if not settings.AI_API_KEY:
        raise click.UsageError("AI_API_KEY is not set")

    batch_config = _build_config(concurrency, retry_attempts, rate_limit)

    async def run():
        async with GenerationClient.from_settings(settings) as client:
            return await generate_records(
                prompts, client=client, executor=BatchExecutor(batch_config)
            )

    result = asyncio.run(run())

    if output:
        with output.open("w", encoding="utf-8") as fh:
            for record in result.success:
                fh.write(json.dumps(record, ensure_ascii=False) + "\n")
            for failed in result.failed:
                fh.write(json.dumps({
                    "index": failed.index,
                    "error": failed.error,
                    "prompt": failed.input,
                }, ensure_ascii=False) + "\n")

    stats = result.statistics
    click.echo(tabulate(
        [
            ["Succeeded", len(result.success)],
            ["Failed", len(result.failed)],
            ["Success rate", f"{stats.success_rate * 100:.1f}%"],
            ["Total time (s)", f"{stats.total_processing_time:.2f}"],
            ["Average time (s)", f"{stats.average_processing_time:.2f}"],
        ],
        headers=["Metric", "Value"],
        tablefmt="grid",
    ))

    if result.failed:
        rows = [[f.index, f.error_type, f.attempts, f.error] for f in result.failed]
        click.echo("\n" + tabulate(
            rows, headers=["Index", "Error type", "Attempts", "Error"], tablefmt="grid"
        ))


def _build_config(
    concurrency: Optional[int],
    retry_attempts: Optional[int],
    rate_limit: Optional[int],
) -> BatchProcessingConfig:
    overrides = {
        key: value
        for key, value in {
            "concurrency": concurrency,
            "retry_attempts": retry_attempts,
            "rate_limit_per_second": rate_limit,
        }.items()
        if value is not None
    }
    base = BatchProcessingConfig.from_settings(get_settings())
    try:
        return BatchProcessingConfig(**{**base.to_dict(), **overrides})
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


if __name__ == '__main__':
    cli()
