"""Command-line interface for bookflow."""

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from bookflow.backoff import compute_delay
from bookflow.config import load_config
from bookflow.model import AlphaMetadata
from bookflow.quality import channel_stdevs, inspect_alpha, score_breakdown
from bookflow.theme import generate_theme


@click.group()
def cli():
    """bookflow: control-plane gateway for book generation workflows."""


@cli.command("serve")
@click.option("--config", "config_path", default=None, help="Path to bookflow.toml")
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", default=None, type=int, help="Bind port (overrides config)")
@click.option("--env-file", default=".env", show_default=True, help="dotenv file to load")
def serve(config_path, host, port, env_file):
    """Run the HTTP gateway against a Temporal cluster."""
    import uvicorn

    from bookflow.engine import TemporalEngineClient
    from bookflow.gateway import create_app

    load_dotenv(Path(env_file))
    config = load_config(config_path)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = TemporalEngineClient(
        address=config.temporal_address,
        namespace=config.temporal_namespace,
        task_queue=config.task_queue,
    )
    app = create_app(engine, config=config)
    uvicorn.run(
        app,
        host=host or config.host,
        port=port or config.port,
        log_level=config.log_level.lower(),
    )


@cli.command("theme")
@click.argument("seed")
def theme(seed):
    """Print the seed-derived theme as JSON."""
    click.echo(generate_theme(seed).model_dump_json(by_alias=True, indent=2))


@cli.command("score")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--metadata",
    "metadata_json",
    default=None,
    help="AlphaMetadata as JSON; derived from the image when omitted",
)
def score(image, metadata_json):
    """Score a character image and print the breakdown."""
    data = image.read_bytes()
    if metadata_json:
        try:
            metadata = AlphaMetadata.model_validate_json(metadata_json)
        except ValueError as e:
            click.echo(f"Error: invalid metadata: {e}", err=True)
            sys.exit(1)
    else:
        metadata = inspect_alpha(data)
    alpha_stdev, color_stdev = channel_stdevs(data)
    breakdown = score_breakdown(metadata, alpha_stdev, color_stdev)
    click.echo(breakdown.model_dump_json(by_alias=True, indent=2))


@cli.command("retry-after")
@click.argument("value")
@click.option("--default-ms", default=1000, show_default=True, type=int)
def retry_after(value, default_ms):
    """Print the delay in ms a Retry-After VALUE asks for."""
    click.echo(json.dumps({"delayMs": compute_delay(value, default_ms)}))


def main():
    cli()


if __name__ == "__main__":
    main()
