import asyncio

import click

from .config import load_settings
from .db import Database
from .log import configure_logging


@click.group()
def cli():
    """Top-level CLI group for the catalogue_api tool."""
    pass


@cli.command(name="serve")
@click.option("--host", default="0.0.0.0", help="Host to bind to")
@click.option("--port", default=8000, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(host: str, port: int, reload: bool):
    """Start the FastAPI REST API server."""
    import uvicorn
    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"API documentation: http://{host}:{port}/docs")
    uvicorn.run(
        "catalogue_api.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        access_log=False,
    )


# ============================================================================
# Database Management Commands
# ============================================================================

database_url_option = click.option(
    "--database-url",
    envvar="POSTGRES_URI",
    required=True,
    help="PostgreSQL connection string (or set POSTGRES_URI env var)"
)


def _run(database_url: str, work):
    """Run ``work(database, settings)`` against a fresh handle, then dispose it."""
    settings = load_settings(database_url=database_url)
    configure_logging(settings.log_level, json_lines=False)

    async def runner():
        database = Database(settings.database_url, echo=settings.echo_sql)
        try:
            return await work(database, settings)
        finally:
            await database.dispose()

    return asyncio.run(runner())


@cli.group(name="db")
def db_group():
    """Database schema and data management commands."""
    pass


@db_group.command(name="create-schema")
@database_url_option
@click.option(
    "--drop-existing",
    is_flag=True,
    help="Drop existing tables before creating schema"
)
@click.confirmation_option(
    prompt="Are you sure you want to create the database schema?",
    help="Skip confirmation prompt"
)
def create_schema(database_url: str, drop_existing: bool):
    """Create database schema from SQLAlchemy models."""
    from . import db_utils

    click.echo(f"Creating schema in database: {database_url}")

    if drop_existing:
        click.echo(click.style("⚠️  WARNING: Dropping all existing tables!", fg="yellow", bold=True))

    try:
        _run(database_url, lambda database, settings: db_utils.create_schema(database, drop_existing=drop_existing))
        click.echo(click.style("✓ Schema created successfully!", fg="green"))
    except Exception as e:
        click.echo(click.style(f"✗ Error creating schema: {e}", fg="red"), err=True)
        raise click.Abort()


@db_group.command(name="seed")
@database_url_option
def seed_data(database_url: str):
    """Seed database with reference data (resource types, clinical profiles, populations)."""
    from . import db_utils

    click.echo(f"Seeding initial data in database: {database_url}")

    try:
        seeded = _run(
            database_url,
            lambda database, settings: db_utils.seed_initial_data(
                database, settings.locales, settings.default_locale
            ),
        )
        if seeded:
            for table, count in sorted(seeded.items()):
                click.echo(f"  {table}: {count}")
        else:
            click.echo("  Reference tables already populated, nothing to seed.")
        click.echo(click.style("✓ Initial data seeded successfully!", fg="green"))
    except Exception as e:
        click.echo(click.style(f"✗ Error seeding data: {e}", fg="red"), err=True)
        raise click.Abort()


@db_group.command(name="stats")
@database_url_option
def show_stats(database_url: str):
    """Show database statistics (record counts per table)."""
    from . import db_utils

    click.echo(f"Fetching statistics from database: {database_url}\n")

    try:
        stats = _run(database_url, lambda database, settings: db_utils.get_database_stats(database))

        # Calculate column width for alignment
        max_table_len = max(len(table) for table in stats.keys())

        click.echo(click.style("Database Statistics", bold=True))
        click.echo("=" * (max_table_len + 20))

        categories = {
            "Taxonomy": ["domains", "tags", "themes", "resource_types"],
            "Clinical": ["population", "clinical_profiles"],
            "Catalogue": ["tests", "resources"],
        }

        for category, tables in categories.items():
            click.echo(f"\n{click.style(category, fg='cyan', bold=True)}")
            for table in tables:
                if table in stats:
                    count = stats[table]
                    color = "green" if count > 0 else "white"
                    click.echo(f"  {table:<{max_table_len}} : {click.style(str(count), fg=color)}")

        total_records = sum(stats.values())
        click.echo("\n" + "=" * (max_table_len + 20))
        click.echo(f"{click.style('Total Records', bold=True):<{max_table_len + 2}}: {click.style(str(total_records), fg='cyan', bold=True)}")

    except Exception as e:
        click.echo(click.style(f"✗ Error fetching statistics: {e}", fg="red"), err=True)
        raise click.Abort()


@db_group.command(name="verify")
@database_url_option
def verify_schema(database_url: str):
    """Verify that every mapped table can be queried."""
    from . import db_utils

    click.echo(f"Verifying schema in database: {database_url}\n")

    try:
        is_valid = _run(database_url, lambda database, settings: db_utils.verify_schema(database))
    except Exception as e:
        click.echo(click.style(f"✗ Error verifying schema: {e}", fg="red"), err=True)
        raise click.Abort()

    if is_valid:
        click.echo(click.style("✓ Schema verification passed!", fg="green", bold=True))
    else:
        click.echo(click.style("✗ Schema verification failed!", fg="red", bold=True))
        raise click.Abort()


@db_group.command(name="init")
@database_url_option
@click.option(
    "--drop-existing",
    is_flag=True,
    help="Drop existing tables before creating schema"
)
def init_database(database_url: str, drop_existing: bool):
    """Initialize database (create schema + seed data)."""
    from . import db_utils

    click.echo(click.style("Initializing database...\n", bold=True))
    click.echo(f"Database: {database_url}\n")

    if drop_existing:
        click.echo(click.style("⚠️  WARNING: This will drop all existing tables!", fg="yellow", bold=True))
        if not click.confirm("Are you sure you want to continue?"):
            raise click.Abort()

    async def initialize(database, settings):
        click.echo("\n[1/3] Creating schema...")
        await db_utils.create_schema(database, drop_existing=drop_existing)
        click.echo(click.style("  ✓ Schema created", fg="green"))

        click.echo("\n[2/3] Seeding initial data...")
        await db_utils.seed_initial_data(database, settings.locales, settings.default_locale)
        click.echo(click.style("  ✓ Data seeded", fg="green"))

        click.echo("\n[3/3] Verifying schema...")
        if not await db_utils.verify_schema(database):
            return None
        click.echo(click.style("  ✓ Verification passed", fg="green"))
        return await db_utils.get_database_stats(database)

    try:
        stats = _run(database_url, initialize)
    except Exception as e:
        click.echo(click.style(f"\n✗ Database initialization failed: {e}", fg="red", bold=True), err=True)
        raise click.Abort()

    if stats is None:
        click.echo(click.style("  ✗ Verification failed", fg="red"))
        raise click.Abort()

    click.echo("\n" + "=" * 60)
    click.echo(click.style("Database initialized successfully! 🎉", fg="green", bold=True))
    click.echo("=" * 60 + "\n")

    click.echo("Initial record counts:")
    for table, count in sorted(stats.items()):
        if count > 0:
            click.echo(f"  {table}: {count}")


__all__ = ["cli"]
