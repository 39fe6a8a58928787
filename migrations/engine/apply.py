"""
Apply the campaign engine migrations.

Usage:
    python migrations/engine/apply.py

Requires SUPABASE_URL and SUPABASE_SERVICE_KEY in .env, and an `exec_sql`
RPC in the project. Without it, run the SQL files in the Supabase SQL Editor.
"""
import os
import sys
from pathlib import Path
from supabase import create_client

from dotenv import load_dotenv
load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

MIGRATIONS_DIR = Path(__file__).parent

# Applied in order
MIGRATIONS = [
    "001_campaign_engine.sql",
]


def apply_migrations(client) -> bool:
    """Apply every migration in order. Returns False on the first error."""
    for migration_file in MIGRATIONS:
        path = MIGRATIONS_DIR / migration_file
        if not path.exists():
            print(f"[SKIP] {migration_file} not found")
            continue

        print(f"[APPLY] {migration_file}...")
        try:
            client.rpc("exec_sql", {"sql": path.read_text()}).execute()
        except Exception as e:
            print(f"[ERROR] {migration_file}: {e}")
            return False
        print(f"[OK] {migration_file}")
    return True


if __name__ == "__main__":
    if not SUPABASE_URL or not SUPABASE_KEY:
        print("Error: SUPABASE_URL and SUPABASE_SERVICE_KEY are required in .env")
        sys.exit(1)

    print("=== Campaign engine migrations ===")
    print(f"URL: {SUPABASE_URL}")
    print()

    if not apply_migrations(create_client(SUPABASE_URL, SUPABASE_KEY)):
        print()
        print("Run the SQL manually in the Supabase SQL Editor:")
        for m in MIGRATIONS:
            print(f"  - migrations/engine/{m}")
        sys.exit(1)
