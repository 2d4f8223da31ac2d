import asyncio
from pathlib import Path
from typing import List, Optional

import typer

from .config import Settings
from .core import TagSaverCore
from .dedup.fingerprint import Fingerprint, InvalidFingerprintError
from .dedup.hash import HashEngine
from .dedup.resolver import SimilarityVerdict
from .logging import get_logger
from .store.base import TAG_SEARCH_LIMIT, StoreError
from .store.export import export_records, import_records
from .store.sqlite import SqliteRecordStore

app = typer.Typer(help="tagsaver – perceptual duplicate detection and pool ordering for saved media", no_args_is_help=True)

logger = get_logger(__name__)

DB_OPTION = typer.Option(None, "--db", help="Record database path (defaults to TAGSAVER_DB_PATH)")


def _settings(db: Optional[Path] = None, scheme: Optional[str] = None) -> Settings:
    try:
        settings = Settings.from_env()
        if db is not None:
            settings.db_path = db
        if scheme is not None:
            settings.hash_scheme = scheme
        return settings.validate()
    except ValueError as exc:
        logger.error(f"Invalid configuration: {exc}")
        raise typer.Exit(code=2) from exc


def _open_core(settings: Settings) -> TagSaverCore:
    try:
        return TagSaverCore.from_settings(settings)
    except StoreError as exc:
        logger.error(f"Cannot open record database: {exc}")
        raise typer.Exit(code=1) from exc


def _describe(verdict: SimilarityVerdict) -> str:
    if not verdict.is_duplicate:
        return "unique"
    kind = "exact duplicate" if verdict.exact_match else f"near duplicate (distance {verdict.distance})"
    record = verdict.matched_record
    if record is None:
        return f"{kind} [{verdict.source}]"
    return f"{kind} of record {record.id} ({record.source_url}) [{verdict.source}]"


@app.command("hash")
def hash_media(
    media: str = typer.Argument(..., help="Image/video path, http(s) URL or data: URL"),
    scheme: Optional[str] = typer.Option(None, help="Fingerprint scheme: 'dct' or 'ahash'"),
) -> None:
    """Print the fingerprint of a media item."""
    settings = _settings(scheme=scheme)
    fingerprint = asyncio.run(HashEngine(settings).compute_fingerprint(media))
    if fingerprint is None:
        logger.error(f"Could not fingerprint {media}")
        raise typer.Exit(code=1)
    typer.echo(str(fingerprint))


@app.command()
def check(
    target: str = typer.Argument(..., help="Fingerprint string, or media to fingerprint first"),
    threshold: Optional[int] = typer.Option(None, min=0, help="Maximum Hamming distance for a near duplicate"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Check whether media (or a fingerprint) duplicates a saved record."""
    settings = _settings(db)

    async def run() -> Optional[SimilarityVerdict]:
        core = _open_core(settings)
        try:
            try:
                fingerprint = Fingerprint.parse(target)
            except InvalidFingerprintError:
                fingerprint = await core.compute_fingerprint(target)
            if fingerprint is None:
                return None
            return await core.check_duplicate(fingerprint, threshold)
        finally:
            await core.close()

    try:
        verdict = asyncio.run(run())
    except StoreError as exc:
        logger.error(f"Record store failure: {exc}")
        raise typer.Exit(code=1) from exc
    if verdict is None:
        logger.error(f"Could not fingerprint {target}; duplicate check skipped")
        typer.echo("unavailable")
        raise typer.Exit(code=1)
    typer.echo(_describe(verdict))


@app.command("pool-highest")
def pool_highest(
    pool_id: str = typer.Argument(..., help="Pool identifier"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Print the highest index used in a pool, or 'empty'."""
    settings = _settings(db)

    async def run() -> Optional[int]:
        core = _open_core(settings)
        try:
            return await core.get_highest_pool_index(pool_id)
        finally:
            await core.close()

    try:
        highest = asyncio.run(run())
    except StoreError as exc:
        logger.error(f"Record store failure: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo("empty" if highest is None else str(highest))


@app.command("search-tags")
def search_tags(
    text: str = typer.Argument(..., help="Text to look for inside saved tags"),
    limit: int = typer.Option(TAG_SEARCH_LIMIT, min=1, help="Maximum number of tags to print"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Print saved tags containing TEXT, one per line."""
    settings = _settings(db)

    async def run() -> List[str]:
        core = _open_core(settings)
        try:
            return await core.search_tags(text, limit)
        finally:
            await core.close()

    try:
        tags = asyncio.run(run())
    except StoreError as exc:
        logger.error(f"Record store failure: {exc}")
        raise typer.Exit(code=1) from exc
    for tag in tags:
        typer.echo(tag)


@app.command("export")
def export_db(
    out: Path = typer.Argument(..., help="JSON file to write"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Export all records as JSON."""
    settings = _settings(db)

    async def run() -> int:
        async with SqliteRecordStore(settings.db_path) as store:
            return await export_records(store, out)

    try:
        count = asyncio.run(run())
    except StoreError as exc:
        logger.error(f"Export failed: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Exported {count} records to {out}")


@app.command("import")
def import_db(
    source: Path = typer.Argument(..., exists=True, readable=True, help="JSON export to read"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Import records from a JSON export, keeping pool indices unique."""
    settings = _settings(db)

    async def run() -> int:
        async with SqliteRecordStore(settings.db_path) as store:
            return await import_records(store, source)

    try:
        count = asyncio.run(run())
    except StoreError as exc:
        logger.error(f"Import failed: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Imported {count} records from {source}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
