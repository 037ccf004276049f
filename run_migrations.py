#!/usr/bin/env python3
"""
Apply database migrations for the ambassador program.
Usage: python3 run_migrations.py [revision]
"""
import subprocess
import sys
from pathlib import Path


def run_migrations(revision: str = "head"):
    """Runs `alembic upgrade` from the backend directory (where alembic.ini lives)."""
    backend_dir = Path(__file__).parent / "backend"

    print(f"🔄 Upgrading database to {revision}...")

    try:
        result = subprocess.run(
            ["alembic", "upgrade", revision],
            cwd=backend_dir,
            check=True,
            capture_output=True,
            text=True
        )

        print("✅ Migrations applied")
        if result.stdout:
            print(result.stdout)

    except subprocess.CalledProcessError as e:
        print("❌ Migration failed:")
        if e.stderr:
            print(e.stderr)
        if e.stdout:
            print(e.stdout)
        sys.exit(1)
    except FileNotFoundError:
        print("❌ alembic not found. Install the project first: pip install -e .")
        sys.exit(1)


if __name__ == "__main__":
    run_migrations(sys.argv[1] if len(sys.argv) > 1 else "head")
