"""CLI entry point for the census tool."""

import contextlib
import logging
import sqlite3
import sys
from typing import NoReturn

import click

from census.aggregator import aggregate
from census.config import CensusConfig, ConfigError, load_config
from census.forkid import ForkIDClassifier
from census.geoip import GeoIPReader, GeoLookupError
from census.models import ForkID
from census.observations import ObservationFormatError, load_observations
from census.output import render_identity, render_summary
from census.persistence import connect, create_schema, fetch_observations, schema_exists
from census.recorder import TelemetryRecorder
from census.vparser import parse

logger = logging.getLogger(__name__)

FORMATS = ("table", "json")


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.census/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Record who blockchain peers claim to be and which chain they follow."""
    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if verbose else cfg.log_level,
        format="%(levelname)s: %(message)s",
    )
    logger.debug("Config loaded: %s", cfg)
    ctx.obj = cfg


@main.command("init-db")
@click.pass_obj
def init_db_cmd(cfg: CensusConfig) -> None:
    """Create the observation table in a fresh database."""
    conn = connect(cfg.db_path)
    try:
        create_schema(conn)
    except sqlite3.OperationalError as exc:
        _fail(f"cannot initialize {cfg.db_path}: {exc}")
    finally:
        conn.close()
    click.echo(f"Initialized {cfg.db_path}")


@main.command("parse")
@click.argument("version_string")
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
def parse_cmd(version_string: str, output_format: str) -> None:
    """Parse a client version string."""
    render_identity(version_string, parse(version_string), output_format.lower())


@main.command("classify")
@click.argument("fork_hash")
@click.argument("next_fork", type=int, default=0)
@click.pass_obj
def classify_cmd(cfg: CensusConfig, fork_hash: str, next_fork: int) -> None:
    """Name the chain a fork ID (FORK_HASH, NEXT_FORK) belongs to."""
    try:
        fork_id = ForkID.from_hex(fork_hash, next_fork)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="FORK_HASH") from exc

    classifier = ForkIDClassifier.from_chains(cfg.registry)
    click.echo(classifier.classify(fork_id) or "unknown")


@main.command("record")
@click.argument("observations_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def record_cmd(cfg: CensusConfig, observations_path: str) -> None:
    """Record a crawler observation dump as one batch."""
    try:
        batch = load_observations(observations_path)
    except ObservationFormatError as exc:
        _fail(str(exc))

    conn = connect(cfg.db_path)
    try:
        if not schema_exists(conn):
            _fail(f"{cfg.db_path} is not initialized; run 'census init-db' first")

        with contextlib.ExitStack() as stack:
            geo = None
            if cfg.maxmind_city_db:
                geo = stack.enter_context(GeoIPReader(cfg.maxmind_city_db))
            recorder = TelemetryRecorder(
                conn,
                geo=geo,
                classifier=ForkIDClassifier.from_chains(cfg.registry),
            )
            written = recorder.record(batch)
    except (GeoLookupError, sqlite3.Error) as exc:
        _fail(f"batch not recorded: {exc}")
    finally:
        conn.close()

    click.echo(f"Recorded {written} observations")


@main.command("summary")
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
@click.option(
    "--latest/--all",
    default=True,
    show_default=True,
    help="Only the latest observation per peer, or the full time series.",
)
@click.pass_obj
def summary_cmd(cfg: CensusConfig, output_format: str, latest: bool) -> None:
    """Summarize recorded observations."""
    conn = connect(cfg.db_path)
    try:
        if not schema_exists(conn):
            _fail(f"{cfg.db_path} is not initialized; run 'census init-db' first")
        rows = fetch_observations(conn, latest_only=latest)
    finally:
        conn.close()

    render_summary(aggregate(rows), output_format.lower())


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)
