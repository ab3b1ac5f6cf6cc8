"""Programmatic Alembic environment for SocialSync's bundled migrations.

Invoked by Alembic's runtime when ``SocialSync.migrate()`` calls
``alembic.command.upgrade()``; the sync connection arrives through
``config.attributes["connection"]``.
"""

from alembic import context

config = context.config


def run_migrations_online() -> None:
    connection = config.attributes.get("connection")
    if connection is None:
        raise RuntimeError(
            "No connection provided. Use SocialSync.migrate() to run migrations."
        )

    context.configure(
        connection=connection,
        target_metadata=None,
        version_table="socialsync_alembic_version",
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


run_migrations_online()
