"""Command line interface for roomwatch."""
from __future__ import annotations

import logging
import os
from typing import Optional

import typer
from pydantic import ValidationError

from .config import Settings, load_site_configs
from .scheduler import ActivityState, Scheduler
from .sites import available_sites, build_sites
from .workflow import Runtime, build_runtime, classify_all, crawl_all, run_cycle

app = typer.Typer(add_completion=False, help="Rental listing watcher")
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
for _noisy in ("httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)


def _settings() -> Settings:
    try:
        return Settings.from_env()
    except ValidationError as exc:
        typer.echo(f"Invalid configuration:\n{exc}", err=True)
        raise typer.Exit(code=2)


def _runtime(settings: Settings, site: Optional[str] = None) -> Runtime:
    if site is not None and site not in available_sites():
        typer.echo(f"Unknown site '{site}'. Known sites: {', '.join(available_sites())}", err=True)
        raise typer.Exit(code=2)
    try:
        runtime = build_runtime(settings, only=[site] if site else None)
    except ValueError as exc:
        typer.echo(f"Invalid site registry: {exc}", err=True)
        raise typer.Exit(code=2)
    if site is not None and not runtime.pipelines:
        typer.echo(f"Site '{site}' is disabled or missing configuration.", err=True)
        runtime.close()
        raise typer.Exit(code=1)
    return runtime


@app.command()
def run() -> None:
    """Run cycles continuously, honouring quiet hours, until interrupted."""
    settings = _settings()
    runtime = _runtime(settings)
    scheduler = Scheduler.from_settings(
        settings,
        lambda: run_cycle(runtime.pipelines, runtime.mailer, runtime.errors),
        runtime.errors,
        runtime.mailer,
    )
    try:
        scheduler.run()
    finally:
        runtime.close()


@app.command()
def cycle(
    force: bool = typer.Option(False, "--force", help="Run even during quiet hours."),
) -> None:
    """Run a single crawl, classify and notify cycle."""
    settings = _settings()
    runtime = _runtime(settings)
    try:
        scheduler = Scheduler.from_settings(settings, lambda: None, runtime.errors)
        if not force and scheduler.state() is ActivityState.QUIET:
            typer.echo("Outside active hours; use --force to run anyway.")
            return
        result = run_cycle(runtime.pipelines, runtime.mailer, runtime.errors)
        runtime.mailer.send_error_digest()
    finally:
        runtime.close()
    typer.echo(f"Cycle complete. {result.queued} queued, {result.promoted} promoted.")


@app.command()
def crawl(site: str = typer.Argument(..., help="Site slug, e.g. kamernet")) -> None:
    """Discover new listings for one site and queue their details."""
    runtime = _runtime(_settings(), site)
    try:
        result = crawl_all(runtime.pipelines, runtime.errors)
    finally:
        runtime.close()
    crawl_result = result.for_site(site).crawl
    if crawl_result is None:
        typer.echo(f"Crawl for {site} failed; see the log for details.")
        raise typer.Exit(code=1)
    typer.echo(
        f"Crawl complete. {len(crawl_result.new_links)} new links, "
        f"{crawl_result.queued} queued, {len(crawl_result.failed)} failed."
    )


@app.command()
def classify(site: str = typer.Argument(..., help="Site slug, e.g. kamernet")) -> None:
    """Classify the queued listings of one site into the digest."""
    runtime = _runtime(_settings(), site)
    try:
        result = classify_all(runtime.pipelines, runtime.errors)
    finally:
        runtime.close()
    classify_result = result.for_site(site).classify
    if classify_result is None:
        typer.echo(f"Classification for {site} failed; see the log for details.")
        raise typer.Exit(code=1)
    if classify_result.dormant:
        typer.echo("Nothing classified (empty queue, missing prompt or missing API key).")
        return
    typer.echo(
        f"Classified {len(classify_result.promoted)} listing(s), "
        f"{len(classify_result.failed)} failed, {classify_result.skipped_malformed} malformed."
    )


@app.command()
def send() -> None:
    """Email the pending listing digest."""
    runtime = _runtime(_settings())
    try:
        if runtime.digest.is_empty():
            typer.echo("No new listings to notify.")
            return
        message_id = runtime.mailer.send_notification_digest()
    finally:
        runtime.close()
    if message_id is None:
        typer.echo("Digest not sent; it is kept for the next attempt.")
        raise typer.Exit(code=1)
    typer.echo(f"Digest sent: {message_id}")


@app.command()
def sites() -> None:
    """List known sites and whether they are ready to run."""
    settings = _settings()
    registry = available_sites()
    try:
        configs = {config.slug: config for config in load_site_configs(settings, list(registry))}
    except ValueError as exc:
        typer.echo(f"Invalid site registry: {exc}", err=True)
        raise typer.Exit(code=2)
    ready, dormant = build_sites(list(configs.values()))
    ready_slugs = {site.slug for site in ready}
    for slug in registry:
        if slug in ready_slugs:
            status = "ready"
        elif slug in dormant:
            status = f"dormant ({dormant[slug]})"
        else:
            status = "disabled"
        typer.echo(f"{slug}: {status}")


if __name__ == "__main__":
    app()
