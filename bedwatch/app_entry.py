from __future__ import annotations
import os
import uvicorn

def main() -> None:
    mode = os.environ.get("BEDWATCH_RUN_MODE", "api").lower()
    if mode == "migrate":
        from bedwatch.scripts.migrate_and_seed import main as migrate
        migrate()
    else:
        from bedwatch.app import app
        uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))

if __name__ == "__main__":
    main()
