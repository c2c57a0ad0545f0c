from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer

from repocache.config import AppConfig, load_config
from repocache.remote import GitHubSearchFetcher
from repocache.schemas import Failed, Pending, QueryResult, Ready, RepoOwner, RepoRecord
from repocache.storage import RepoStore, StorageError
from repocache.sync import QuerySession, SyncEngine

app = typer.Typer(help="Repository search with offline cache fallback")
cache_app = typer.Typer(help="Local cache commands")
debug_app = typer.Typer(help="Debug commands")
app.add_typer(cache_app, name="cache")
app.add_typer(debug_app, name="debug")

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="Path to JSON/YAML config file.",
    exists=True,
    dir_okay=False,
    readable=True,
)
_DB_PATH_OPTION = typer.Option(
    None,
    "--db-path",
    help="SQLite cache file path (overrides config).",
)


@app.command()
def search(
    query: str = typer.Argument("", help="Search term; blank uses the default query."),
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
    limit: int = typer.Option(20, "--limit", min=1, help="Rows to print."),
) -> None:
    """Search repositories, falling back to the local cache when offline."""
    engine = _build_engine(config_path, db_path)
    result = engine.resolve_terminal(query)

    if isinstance(result, Failed):
        typer.echo(f"search failed: {result.reason}", err=True)
        raise typer.Exit(code=1)

    typer.echo(_render_repo_table(list(result.records)[:limit]))
    typer.echo(f"source={result.source} records={len(result.records)}")
    if result.cache_error:
        typer.echo(f"cache warning: {result.cache_error}", err=True)


@app.command()
def interactive(
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
    limit: int = typer.Option(10, "--limit", min=1, help="Rows to print per result."),
) -> None:
    """Read queries from stdin, one per line, printing each resolved result."""
    engine = _build_engine(config_path, db_path)

    def _on_change(query: str, result: QueryResult) -> None:
        label = query or "<default>"
        if isinstance(result, Pending):
            typer.echo(f"[{label}] loading...")
        elif isinstance(result, Ready):
            typer.echo(_render_repo_table(list(result.records)[:limit]))
            typer.echo(f"[{label}] source={result.source} records={len(result.records)}")
        else:
            typer.echo(f"[{label}] error: {result.reason}")

    session = QuerySession(engine, on_change=_on_change)
    for raw_line in sys.stdin:
        line = raw_line.strip()
        if line in {":q", ":quit"}:
            break
        session.submit(line)
    session.wait()


@cache_app.command("list")
def cache_list(
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
) -> None:
    """Print every cached repository."""
    store = _open_store(config_path, db_path)
    try:
        records = store.get_all()
    except StorageError as exc:
        typer.echo(f"cache error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(_render_repo_table(records))


@cache_app.command("search")
def cache_search(
    fragment: str = typer.Argument(..., help="Substring matched against name/owner/description."),
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
) -> None:
    """Search the local cache without touching the network."""
    store = _open_store(config_path, db_path)
    try:
        records = store.search_by_substring(fragment)
    except StorageError as exc:
        typer.echo(f"cache error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(_render_repo_table(records))


@cache_app.command("clear")
def cache_clear(
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
) -> None:
    """Delete every cached repository."""
    store = _open_store(config_path, db_path)
    removed = store.count()
    store.clear_all()
    typer.echo(f"cleared {removed} cached repositories")


@debug_app.command("storage")
def debug_storage(
    db_path: Path = typer.Option(
        Path("data/storage/repocache.db"),
        "--db-path",
        help="SQLite DB file path.",
    ),
) -> None:
    """Run storage smoke test."""
    store = RepoStore(db_path)
    sample = RepoRecord(
        id=-1,
        name="storage-smoke-test",
        repo_url="https://example.com/debug/storage",
        owner=RepoOwner(login="debug"),
    ).with_owner_login()

    existing = store.get_all()
    store.insert_all([sample])
    found = [record for record in store.search_by_substring("smoke") if record.id == sample.id]
    store.replace_all(existing)

    if not found or found[0].owner_login != "debug":
        typer.echo("storage smoke test failed", err=True)
        raise typer.Exit(code=1)

    typer.echo("storage ok")


def _load_app_config(config_path: Path | None) -> AppConfig:
    config = load_config(config_path) if config_path is not None else AppConfig()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    return config


def _open_store(config_path: Path | None, db_path: Path | None) -> RepoStore:
    config = _load_app_config(config_path)
    return RepoStore(db_path or Path(config.storage.db_path))


def _build_engine(config_path: Path | None, db_path: Path | None) -> SyncEngine:
    config = _load_app_config(config_path)
    store = RepoStore(db_path or Path(config.storage.db_path))
    fetcher = GitHubSearchFetcher.from_env(
        env_var=config.github.token_env,
        base_url=config.github.base_url,
        default_query=config.github.default_query,
        per_page=config.github.per_page,
        timeout_seconds=config.github.timeout_seconds,
    )
    return SyncEngine(fetcher=fetcher, store=store)


def _render_repo_table(records: list[RepoRecord]) -> str:
    if not records:
        return "no repositories found"

    headers = ("rank", "name", "owner", "stars", "forks", "language")
    rows = [
        (
            str(index),
            _truncate(record.name, limit=40),
            _truncate(record.owner_login or record.owner.login, limit=24),
            str(record.stars),
            str(record.forks),
            record.language or "-",
        )
        for index, record in enumerate(records, start=1)
    ]

    widths = [
        max(len(headers[column]), *(len(row[column]) for row in rows))
        for column in range(len(headers))
    ]

    def _line(values: tuple[str, ...]) -> str:
        return " | ".join(value.ljust(widths[index]) for index, value in enumerate(values))

    divider = "-+-".join("-" * width for width in widths)
    body = [_line(headers), divider]
    body.extend(_line(row) for row in rows)
    return "\n".join(body)


def _truncate(text: str, *, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[: limit - 3]}..."


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
