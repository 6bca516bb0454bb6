"""
Run Alembic migrations
Usage: python run_migrations.py <command> [args]
"""
import sys
from pathlib import Path

# Project root on the path
sys.path.insert(0, str(Path(__file__).parent))

from alembic.config import Config
from alembic import command
from settings import DatabaseSettings


def _alembic_config() -> Config:
    db_settings = DatabaseSettings()
    if db_settings.dsn:
        print(f"Database: {db_settings.dsn.split('@')[-1]}")
    else:
        print(f"Database: {db_settings.host}:{db_settings.port}/{db_settings.database}")

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", db_settings.url)
    return alembic_cfg


def run_migrations(target="head"):
    """Apply migrations up to target"""
    try:
        alembic_cfg = _alembic_config()
        print(f"Upgrading to: {target}")
        command.upgrade(alembic_cfg, target)
        print("✓ Migrations applied")
    except Exception as e:
        print(f"✗ Migration failed: {e}")
        sys.exit(1)


def downgrade_migrations(revision="-1"):
    """Roll migrations back to revision"""
    try:
        alembic_cfg = _alembic_config()
        print(f"Downgrading to: {revision}")
        command.downgrade(alembic_cfg, revision)
        print("✓ Migrations rolled back")
    except Exception as e:
        print(f"✗ Downgrade failed: {e}")
        sys.exit(1)


def show_current():
    try:
        command.current(_alembic_config())
    except Exception as e:
        print(f"✗ Error: {e}")
        sys.exit(1)


def show_history():
    try:
        command.history(_alembic_config())
    except Exception as e:
        print(f"✗ Error: {e}")
        sys.exit(1)


def main():
    if len(sys.argv) < 2:
        print("Usage:")
        print("  python run_migrations.py upgrade [revision]   - Apply migrations (default: head)")
        print("  python run_migrations.py downgrade [revision] - Roll back (default: -1)")
        print("  python run_migrations.py current              - Show current revision")
        print("  python run_migrations.py history              - Show migration history")
        sys.exit(0)

    cmd = sys.argv[1].lower()

    if cmd == "upgrade":
        run_migrations(sys.argv[2] if len(sys.argv) > 2 else "head")
    elif cmd == "downgrade":
        downgrade_migrations(sys.argv[2] if len(sys.argv) > 2 else "-1")
    elif cmd == "current":
        show_current()
    elif cmd == "history":
        show_history()
    else:
        print(f"✗ Unknown command: {cmd}")
        print("Use: upgrade, downgrade, current, history")
        sys.exit(1)


if __name__ == "__main__":
    main()
