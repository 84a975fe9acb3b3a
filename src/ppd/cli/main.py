"""Typer CLI entry point."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import orjson
import typer

from ppd.config import Settings
from ppd.dashboard import DashboardSession, DashboardView
from ppd.errors import DatasetLoadError
from ppd.models import FilterCriteria
from ppd.utils.logging import configure_logging, get_logger
from ppd.water_tests import WATER_TEST_TYPES


app = typer.Typer(help="Planet Patrol dashboard CLI")
locations_app = typer.Typer(help="Location dictionary commands")

app.add_typer(locations_app, name="locations")

logger = get_logger(__name__)


@app.callback()
def main() -> None:
    """Initialize logging for all commands."""
    settings = Settings()
    configure_logging(settings)


def _echo_json(payload: Any) -> None:
    typer.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"))


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except DatasetLoadError as exc:
        logger.error("cli.load.failed: %s", exc)
        typer.echo(f"Failed to load data: {exc}", err=True)
        raise typer.Exit(1)


async def _summary(criteria: FilterCriteria, wait_for_locations: bool) -> DashboardView:
    async with DashboardSession(Settings()) as session:
        await session.open()
        if wait_for_locations and session.dictionary is not None:
            await session.dictionary.enrich(session.records)
        return session.apply(criteria)


@app.command("summary")
def summary(
    status: str = typer.Option("all", help="all | moderated | unmoderated"),
    min_pieces: int = typer.Option(0, help="Minimum pieces per record"),
    year: str = typer.Option("", help="Calendar year, e.g. 2023"),
    month: str = typer.Option("", help="Month 1-12"),
    day: str = typer.Option("", help="Day of month"),
    country: str = typer.Option("", help="Country group key, e.g. cc:GB"),
    constituency: str = typer.Option("", help="Constituency group key"),
    mission: str = typer.Option("", help="Mission group key"),
    search: str = typer.Option("", help="Brand/label search text"),
    wait_for_locations: bool = typer.Option(
        False, help="Finish location enrichment before filtering"
    ),
) -> None:
    """Print the filtered dashboard view as JSON."""
    criteria = FilterCriteria(
        status=status,
        min_pieces=min_pieces,
        year=year,
        month=month,
        day=day,
        country=country,
        constituency=constituency,
        mission=mission,
        search=search,
    )
    view = _run(_summary(criteria, wait_for_locations))
    _echo_json(view.model_dump(mode="json"))


async def _build_locations() -> tuple[int, int, int]:
    async with DashboardSession(Settings()) as session:
        await session.open(start_enrichment=False)
        dictionary = await session.open_locations()
        before = len(dictionary)
        resolved = await dictionary.enrich(session.records)
        return before, resolved, len(dictionary)


@locations_app.command("build")
def locations_build() -> None:
    """Resolve every record coordinate and persist the dictionary."""
    before, resolved, total = _run(_build_locations())
    typer.echo(f"Entries before: {before}  resolved: {resolved}  total: {total}")


async def _country_options() -> DashboardView:
    async with DashboardSession(Settings()) as session:
        await session.open(start_enrichment=False)
        return session.view


@locations_app.command("show")
def locations_show() -> None:
    """Print the country options (flag, name, record count, key)."""
    view = _run(_country_options())
    if not view.countries:
        typer.echo("No countries resolved yet.")
        return
    for option in view.countries:
        typer.echo(f"{option.flag} {option.country} ({option.count})  {option.key}")


async def _water_tests(test_type: str, wait_for_locations: bool) -> list[dict[str, Any]]:
    async with DashboardSession(Settings()) as session:
        rows = await session.water_test_rows(test_type, wait_for_locations=wait_for_locations)
        return [row.model_dump(mode="json", exclude_none=True) for row in rows]


@app.command("water-tests")
def water_tests(
    test_type: str = typer.Option(..., "--type", help=", ".join(WATER_TEST_TYPES)),
    wait_for_locations: bool = typer.Option(
        False, help="Resolve coliform locations before printing"
    ),
    limit: Optional[int] = typer.Option(None, help="Max rows to print"),
) -> None:
    """Print water test results, newest first."""
    if test_type not in WATER_TEST_TYPES:
        raise typer.BadParameter(
            f"expected one of: {', '.join(WATER_TEST_TYPES)}", param_hint="--type"
        )
    rows = _run(_water_tests(test_type, wait_for_locations))
    _echo_json(rows if limit is None else rows[: max(0, limit)])


if __name__ == "__main__":
    app()
