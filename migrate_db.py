"""
Apply pending schema migrations to the configured database.
Run this script once after upgrading; the application also runs it on startup.
"""
import logging

from linkvault.database import engine
from linkvault.migrations import apply_migrations, current_version


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print(f"Connecting to database: {engine.url.render_as_string(hide_password=True)}")
    print(f"Current schema version: {current_version(engine)}")

    applied = apply_migrations(engine)
    if applied:
        print(f"Applied migrations: {', '.join(str(v) for v in applied)}")
    else:
        print("Schema is up to date")
    print(f"Schema version now: {current_version(engine)}")


if __name__ == "__main__":
    main()
