from __future__ import annotations
import os, subprocess, sys
from pathlib import Path
from sqlalchemy import create_engine, text
from bedwatch.config import settings

ALEMBIC_INI = os.environ.get("BEDWATCH_ALEMBIC_INI") or str(Path(__file__).resolve().parents[2] / "alembic.ini")

def main():
    db_url = settings.database_url_migrator or settings.database_url_app
    if not db_url:
        raise SystemExit("No database URL configured (set DATABASE_URL_APP or DATABASE_URL_MIGRATOR)")

    # Run migrations
    env = dict(os.environ, DATABASE_URL_MIGRATOR=db_url)
    subprocess.run([sys.executable, "-m", "alembic", "-c", ALEMBIC_INI, "upgrade", "head"], check=True, env=env)

    if not settings.seed_demo:
        print("Migrations complete.")
        return

    eng = create_engine(db_url, future=True)
    pairs = settings.demo_pairs
    with eng.begin() as c:
        # Reserve a patient slot per demo bed; real details are filled in from the dashboard.
        for room, bed in pairs:
            c.execute(text("""
                INSERT INTO patients (room, bed, name, address, sex, age)
                VALUES (:room, :bed, NULL, NULL, NULL, NULL)
                ON CONFLICT (room, bed) DO NOTHING
            """), {"room": room, "bed": bed})

    print("Migrations complete. Demo beds seeded:", ", ".join(f"{r}/{b}" for r, b in pairs))

if __name__ == "__main__":
    main()
