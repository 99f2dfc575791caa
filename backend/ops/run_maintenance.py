from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _bootstrap_app():
    from souklist import create_app

    app = create_app()
    app.app_context().push()
    return app


def main():
    parser = argparse.ArgumentParser(description="Run or inspect the featured expiry sweep and monthly quota reset.")
    parser.add_argument("job", choices=("expire-featured", "monthly-reset"))
    parser.add_argument("--dry-run", action="store_true", help="Report what is due without changing anything.")
    args = parser.parse_args()

    _bootstrap_app()
    from souklist.services.add_on_service import expiry_status, run_expiry_sweep
    from souklist.services.quota_service import quota_window_status, reset_expired_quota_windows

    if args.job == "expire-featured":
        summary = expiry_status() if args.dry_run else run_expiry_sweep()
    elif args.dry_run:
        summary = quota_window_status()
    else:
        summary = {"users_reset": reset_expired_quota_windows()}

    print(json.dumps(summary, indent=2, default=str))
    return 0


if __name__ == "__main__":
    os.environ.setdefault("FLASK_APP", "main.py")
    sys.exit(main())
