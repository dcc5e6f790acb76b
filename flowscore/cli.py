"""flowscore CLI entry point."""

import json
import logging
import sys
from pathlib import Path
from typing import NoReturn

import click

from flowscore import __version__
from flowscore.config import load_parameters
from flowscore.errors import ConversionError, ScheduleError
from flowscore.schedule_assembler import ScoreConverter
from flowscore.schedule_codec import dumps, loads, schedule_to_rows, validate_rows
from flowscore.schedule_models import PumpAction
from flowscore.score_parser import ScoreParser


def _configure_logging(verbose: bool) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.WARNING,
            format="%(levelname)s: %(name)s: %(message)s",
        )


def _fail(message: str) -> NoReturn:
    click.echo(f"  ERROR: {message}", err=True)
    sys.exit(1)


def _report_conversion_error(exc: ConversionError) -> NoReturn:
    errors = exc.errors if isinstance(exc, ScheduleError) else [exc]
    for error in errors:
        click.echo(f"  ERROR: {error}", err=True)
    sys.exit(1)


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="flowscore")
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline details to stderr.")
def main(verbose: bool) -> None:
    """flowscore — compile dynamics-annotated MusicXML into FlowIO schedules."""
    _configure_logging(verbose)


# ── convert subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("score", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--config",
    "-c",
    "config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="YAML file with bpm, dynamics curve, trill interval and role/port mapping.",
)
@click.option(
    "--bpm",
    type=click.IntRange(1, 400),
    default=None,
    help="Tempo in BPM. Overrides the value in --config.",
)
@click.option(
    "--trill-interval",
    type=click.FloatRange(min=1.0),
    default=None,
    metavar="MS",
    help="Length of each trill sub-event in ms. Overrides the value in --config.",
)
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination schedule file. Defaults to <score>.schedule.json.",
)
def convert(
    score: str,
    config_path: str,
    bpm: int | None,
    trill_interval: float | None,
    output: str | None,
) -> None:
    """
    Convert a MusicXML score into a JSON actuation schedule.

    SCORE is the path to a .musicxml/.xml file.

    \b
    Examples:
      flowscore convert duet.musicxml -c roles.yaml
      flowscore convert duet.musicxml -c roles.yaml --bpm 72 -o duet.json
    """
    score_path = Path(score)
    resolved_output = output if output is not None else str(score_path.with_suffix(".schedule.json"))

    click.echo(f"flowscore v{__version__}")
    click.echo(f"  Score  : {score}")
    click.echo(f"  Config : {config_path}")
    click.echo(f"  Output : {resolved_output}")
    click.echo()

    click.echo("[1/3] Loading conversion parameters...")
    try:
        parameters = load_parameters(config_path, bpm=bpm, trill_interval_ms=trill_interval)
    except ValueError as exc:
        _fail(f"Invalid parameters — {exc}")
    click.echo(
        f"      Tempo: {parameters.bpm} BPM  |  Trill interval: {parameters.trill_interval_ms:g} ms"
    )

    click.echo("[2/3] Compiling schedule...")
    converter = ScoreConverter(parameters)
    try:
        schedule = converter.convert_file(score_path)
    except ConversionError as exc:
        _report_conversion_error(exc)

    end_ms = schedule.time[-1] if schedule.time else 0.0
    click.echo(f"      {len(schedule.time)} tick(s), {end_ms / 1000:.1f} s")
    for role, commands in schedule.instructions.items():
        active = sum(1 for command in commands if command.action is not PumpAction.STOP)
        click.echo(f"        {role:<16} {active} active tick(s)")

    click.echo(f"[3/3] Writing schedule → '{resolved_output}'...")
    try:
        Path(resolved_output).write_text(dumps(schedule), encoding="utf-8")
    except OSError as exc:
        _fail(f"Could not write schedule file — {exc}")

    click.echo()
    click.echo("Done!")


# ── parts subcommand ───────────────────────────────────────────────────────────

@main.command()
@click.argument("score", type=click.Path(exists=True, dir_okay=False, readable=True))
def parts(score: str) -> None:
    """
    List the parts of a score, to help write the role mapping.

    SCORE is the path to a .musicxml/.xml file.
    """
    try:
        parsed = ScoreParser().parse_file(score)
    except ConversionError as exc:
        _report_conversion_error(exc)

    for part_id, part in parsed.items():
        click.echo(f"{part_id:<8} {part.name or '(unnamed)':<24} {len(part.measures)} measure(s)")


# ── check subcommand ───────────────────────────────────────────────────────────

@main.command()
@click.argument("schedule_file", type=click.Path(exists=True, dir_okay=False, readable=True))
def check(schedule_file: str) -> None:
    """
    Validate a schedule JSON file.

    SCHEDULE_FILE is a file written by `flowscore convert`.
    """
    try:
        schedule = loads(Path(schedule_file).read_text(encoding="utf-8"))
    except ValueError as exc:
        _fail(f"Invalid schedule — {exc}")

    roles = ", ".join(schedule.instructions) or "none"
    click.echo(f"OK: {len(schedule.time)} tick(s), roles: {roles}")


# ── rows subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("schedule_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option("--role", "-r", required=True, help="Role to export.")
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination rows file. Defaults to <schedule>-<role>.rows.json.",
)
def rows(schedule_file: str, role: str, output: str | None) -> None:
    """
    Export one role as rows for the manual per-device scheduler.

    \b
    Examples:
      flowscore rows duet.schedule.json --role left-arm
    """
    try:
        schedule = loads(Path(schedule_file).read_text(encoding="utf-8"))
    except ValueError as exc:
        _fail(f"Invalid schedule — {exc}")

    if role not in schedule.instructions:
        _fail(f"Role '{role}' not in schedule (roles: {', '.join(schedule.instructions)})")

    schedule_path = Path(schedule_file)
    resolved_output = (
        output
        if output is not None
        else str(schedule_path.with_name(f"{schedule_path.stem}-{role}.rows.json"))
    )
    try:
        role_rows = validate_rows(schedule_to_rows(schedule, role))
    except ValueError as exc:
        _fail(f"Cannot export role '{role}' — {exc}")

    try:
        Path(resolved_output).write_text(json.dumps(role_rows, indent=2), encoding="utf-8")
    except OSError as exc:
        _fail(f"Could not write rows file — {exc}")

    click.echo(f"Wrote {len(schedule.time)} row(s) → '{resolved_output}'")
