#!/usr/bin/env python3
"""Create the system administrator used to attribute automated audit entries.

Reads SA_EMAIL / SA_NAME (and the usual DATABASE_URL, DATA_PROTECTION_KEY)
from .env. Safe to run repeatedly: an existing user is left untouched.

Usage:
    uv run python scripts/create_system_user.py
    uv run python scripts/create_system_user.py --email ops@example.com --name "Ops Bot"
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.config import get_settings
from src.db.connection import get_engine, get_sessionmaker
from src.handlers.system_user import ensure_system_user
from src.models.admin_user import AdminUserCreate
from src.security.data_protection import get_data_protection_config


async def main(email: str | None, name: str | None) -> int:
    settings = get_settings()
    data = AdminUserCreate(name=name or settings.sa_name, email=email or settings.sa_email)

    async with get_sessionmaker()() as session:
        user, created = await ensure_system_user(session, data, config=get_data_protection_config())
    await get_engine().dispose()

    if created:
        print(f"Created system user {user.id}")
    else:
        print(f"System user already exists: {user.id}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the CECMS system user")
    parser.add_argument("--email", help="Override SA_EMAIL")
    parser.add_argument("--name", help="Override SA_NAME")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.email, args.name)))
