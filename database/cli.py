"""Command line entry point for managing the orders database schema."""

import click
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import SQLAlchemyError

from database.connection import create_db_engine, database_url_from_secret
from database.migrate import (
    MIGRATIONS_DIR,
    MigrationError,
    applied_migrations,
    discover_migrations,
    ensure_history_table,
    migrate,
    validate,
)


def _engine_from_context(ctx: click.Context):
    database_url = ctx.obj.get("database_url")
    secret_arn = ctx.obj.get("secret_arn")

    if database_url:
        return create_db_engine(database_url, echo=ctx.obj["echo"])
    if secret_arn:
        try:
            url = database_url_from_secret(secret_arn, ctx.obj.get("database"))
        except (BotoCoreError, ClientError, ValueError) as e:
            raise click.ClickException(f"Could not read database secret: {e}")
        return create_db_engine(url, echo=ctx.obj["echo"])

    raise click.UsageError(
        "Provide --database-url (DATABASE_URL) or --secret-arn (DB_SECRET_ARN)"
    )


@click.group()
@click.option(
    "--database-url",
    envvar="DATABASE_URL",
    help="SQLAlchemy/libpq URL of the orders database.",
)
@click.option(
    "--secret-arn",
    envvar="DB_SECRET_ARN",
    help="Secrets Manager ARN holding the RDS credentials.",
)
@click.option(
    "--database",
    envvar="DB_NAME",
    help="Database name, overrides the secret's dbname.",
)
@click.option(
    "--migrations-dir",
    type=click.Path(exists=True, file_okay=False),
    default=str(MIGRATIONS_DIR),
    show_default=True,
)
@click.option("--echo/--no-echo", default=False, help="Log SQL statements.")
@click.pass_context
def cli(ctx, database_url, secret_arn, database, migrations_dir, echo):
    """Manage the order processor database schema."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        database_url=database_url,
        secret_arn=secret_arn,
        database=database,
        migrations_dir=migrations_dir,
        echo=echo,
    )


@cli.command("migrate")
@click.option("--target", type=int, help="Highest version to apply.")
@click.pass_context
def migrate_command(ctx, target):
    """Apply pending migrations."""
    engine = _engine_from_context(ctx)
    try:
        applied = migrate(engine, ctx.obj["migrations_dir"], target=target)
    except MigrationError as e:
        raise click.ClickException(str(e))
    except SQLAlchemyError as e:
        raise click.ClickException(f"Database error: {e}")
    finally:
        engine.dispose()

    click.secho(f"{len(applied)} migration(s) applied", fg="green")


@cli.command("info")
@click.pass_context
def info_command(ctx):
    """Show applied and pending migrations."""
    try:
        migrations = discover_migrations(ctx.obj["migrations_dir"])
    except MigrationError as e:
        raise click.ClickException(str(e))

    engine = _engine_from_context(ctx)
    try:
        with engine.begin() as conn:
            ensure_history_table(conn)
            applied = applied_migrations(conn)
    except SQLAlchemyError as e:
        raise click.ClickException(f"Database error: {e}")
    finally:
        engine.dispose()

    click.echo(f"{'Version':<9} {'Description':<30} {'State':<9} Installed on")
    for migration in migrations:
        record = applied.get(migration.version)
        if record is None:
            state, installed_on = "pending", ""
        elif record.checksum != migration.checksum:
            state, installed_on = "changed", record.installed_on.isoformat()
        else:
            state, installed_on = "applied", record.installed_on.isoformat()
        click.echo(
            f"V{migration.version:<8} {migration.description:<30} "
            f"{state:<9} {installed_on}"
        )


@cli.command("validate")
@click.pass_context
def validate_command(ctx):
    """Verify applied migrations match the files on disk."""
    engine = _engine_from_context(ctx)
    try:
        migrations = discover_migrations(ctx.obj["migrations_dir"])
        with engine.begin() as conn:
            ensure_history_table(conn)
            validate(conn, migrations)
    except MigrationError as e:
        raise click.ClickException(str(e))
    except SQLAlchemyError as e:
        raise click.ClickException(f"Database error: {e}")
    finally:
        engine.dispose()

    click.secho("Applied migrations match the migration files", fg="green")


if __name__ == "__main__":
    cli()
