from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
import uvicorn

from nexus_news.cache import build_cache
from nexus_news.commands import build_request
from nexus_news.config import get_settings
from nexus_news.content_store import ContentStore, import_archive
from nexus_news.errors import PipelineFatalError, ValidationError
from nexus_news.logging_config import configure_logging
from nexus_news.pipeline import build_pipeline
from nexus_news.web import create_app

app = typer.Typer(help="Trending news desk CLI")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, json_format=settings.log_json)


@app.command("analyze")
def analyze(
    category: str = typer.Option("nation", help="News category, e.g. nation, world, technology"),
    total: str = typer.Option("5", help="Number of articles to fetch (1-100)"),
    from_date: Optional[str] = typer.Option(None, "--from", help="YYYY-MM-DD, default yesterday"),
    to_date: Optional[str] = typer.Option(None, "--to", help="YYYY-MM-DD, default today"),
    query: str = typer.Option("", help="Keyword filter for the news search"),
    output_format: str = typer.Option("markdown", "--output_format", help="markdown or json"),
) -> None:
    settings = get_settings()
    try:
        request = build_request(
            category=category,
            total=total,
            from_date=from_date,
            to_date=to_date,
            query=query,
            output_format=output_format,
        )
        result = build_pipeline(settings, build_cache(settings)).run(request)
    except (ValidationError, PipelineFatalError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(result.response)


@app.command("serve")
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=host, port=port)


@app.command("import-archive")
def import_archive_cmd(path: Path = typer.Argument(..., help="YAML file with categories and posts")) -> None:
    settings = get_settings()
    try:
        counts = import_archive(ContentStore(settings.content_db_path), path)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Imported categories={counts['categories']} posts={counts['posts']} into {settings.content_db_path}")


if __name__ == "__main__":
    app()
