import sys
from typing import List, Optional
import typer
from memrag.config import settings
from memrag.logging import logger, get_op_id, new_op_id

app = typer.Typer(no_args_is_help=True)

@app.callback()
def main(ctx: typer.Context):
    """
    memrag: semantic memory retrieval CLI.
    """
    # One op id per command, e.g. "doctor-1a2b3c4d"
    new_op_id(ctx.invoked_subcommand or "cli")

def _store():
    from memrag.db import engine, init_db
    from memrag.search import VectorStore
    init_db()
    return VectorStore(engine)

def _processor(store):
    from memrag.errors import ConfigurationError
    from memrag.rag import RAGProcessor
    try:
        return RAGProcessor.from_settings(store, settings)
    except ConfigurationError as e:
        logger.error(f"Cannot build processor: {e}")
        print(f"❌ {e}")
        raise typer.Exit(code=1)

@app.command(name="doctor")
def doctor():
    """
    Check configuration and database health.
    """
    logger.info("Running doctor check...")

    print("\n🩺 memrag Doctor\n")

    print(f"Python: {sys.version.split()[0]}")
    print(f"Op ID: {get_op_id()}")

    print("\n[Configuration]")
    print(f"VOYAGE_BASE_URL:          {settings.VOYAGE_BASE_URL}")
    print(f"EMBEDDING_MODEL:          {settings.EMBEDDING_MODEL}")
    print(f"RERANK_MODEL:             {settings.RERANK_MODEL}")
    print(f"DISCOVERY_THRESHOLD:      {settings.DISCOVERY_THRESHOLD}")
    print(f"SEARCH_THRESHOLD:         {settings.SEARCH_THRESHOLD}")

    # Mask API Key
    api_key_status = "✅ Set" if settings.VOYAGE_API_KEY and settings.VOYAGE_API_KEY.get_secret_value() else "❌ Missing"
    print(f"VOYAGE_API_KEY:           {api_key_status}")

    print("\n[Database]")
    try:
        stats = _store().stats()
        for key, value in stats.items():
            print(f"{key + ':':<26}{value}")
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        print(f"❌ Database unavailable: {e}")

    print("\nDoctor check complete.")


db_app = typer.Typer(help="Database management commands.")
app.add_typer(db_app, name="db")

@db_app.command("init")
def init():
    """Initialize the database tables."""
    from memrag.db import init_db
    try:
        init_db()
        logger.info("Database initialized successfully.")
        print("✅ Database initialized.")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        print(f"❌ Failed: {e}")
        raise typer.Exit(code=1)


rag_app = typer.Typer(help="Embedding, search and backlink commands.")
app.add_typer(rag_app, name="rag")

@rag_app.command("process")
def process():
    """Embed every memory that changed since it was last processed."""
    store = _store()
    report = _processor(store).process_all_pending()
    print(f"Processed {len(report.processed)} memories, {len(report.failed)} failed.")
    for name in report.failed:
        print(f"❌ {name}")
    if not report.ok:
        raise typer.Exit(code=1)

@rag_app.command("search")
def search(
    query: str = typer.Argument("", help="Search text; leave empty to list by tags only"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="key or key=value, repeatable"),
    require_all: bool = typer.Option(False, "--all", help="Require every tag filter to match"),
    limit: int = typer.Option(10, "--limit", "-n"),
):
    """Semantic search over memories."""
    from memrag.rag.formatting import format_search_results
    from memrag.search import TagFilter

    filters = [TagFilter.parse(t) for t in tag or []]
    store = _store()
    try:
        results = _processor(store).search(query, filters, require_all, limit)
    except Exception as e:
        logger.error(f"Search failed: {e}")
        print(f"❌ Failed: {e}")
        raise typer.Exit(code=1)
    print(format_search_results(query, results, filters, require_all))

@rag_app.command("backlinks")
def backlinks(
    name: str,
    query: str = typer.Option("", "--query", "-q", help="Rerank backlinks against this text"),
    limit: int = typer.Option(10, "--limit", "-n"),
):
    """Show semantic backlinks of a memory."""
    from memrag.rag.formatting import format_backlinks

    store = _store()
    try:
        results = _processor(store).enhanced_backlinks(name, query, limit)
    except Exception as e:
        logger.error(f"Backlink lookup failed: {e}")
        print(f"❌ Failed: {e}")
        raise typer.Exit(code=1)
    print(format_backlinks(name, results, query))

if __name__ == "__main__":
    app()
