#!/usr/bin/env python3
"""
Check that the environment can start the service.

Usage:
    python scripts/check_env.py

Exits with status 1 when a required variable is missing or invalid.
"""

import sys

from pydantic import ValidationError

# Variables the service starts without but cannot do its full job without
RECOMMENDED = {
    "PAYMENT_WEBHOOK_SECRET": "payment callbacks are rejected until it is set",
    "SENDGRID_API_KEY": "emails are logged instead of sent",
}


def main() -> int:
    try:
        from core.config import config
    except ValidationError as e:
        print("Environment check failed:")
        for error in e.errors():
            name = ".".join(str(part) for part in error["loc"])
            print(f"  - {name}: {error['msg']}")
        return 1

    print(f"Required variables present ({config.APP_ENV}).")

    missing = [name for name in RECOMMENDED if not getattr(config, name)]
    for name in missing:
        print(f"  warning: {name} is not set, {RECOMMENDED[name]}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
