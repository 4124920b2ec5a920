#!/usr/bin/env python3
"""
Rotate Tenant Secrets Script.

Re-encrypts every secret of the given tenants under the current
ENCRYPTION_KEY. Secrets written under a key listed in
ENCRYPTION_KEY_PREVIOUS are re-wrapped; rows that fail are logged and
skipped, so the script can be re-run safely.

Usage: python scripts/rotate_tenant_secrets.py <tenant_id> [<tenant_id> ...]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from engage_core.database import close_db_connections, get_session_factory
from engage_core.logging_config import setup_logging
from engage_core.security import get_encryption_service
from engage_core.services import SecretsService

logger = logging.getLogger(__name__)


async def rotate(tenant_ids: list[str]) -> dict[str, int]:
    """Rotate each tenant in turn and collect the counts."""
    encryption = get_encryption_service()
    factory = get_session_factory()
    counts: dict[str, int] = {}

    try:
        for tenant_id in tenant_ids:
            async with factory() as session:
                service = SecretsService(session, encryption)
                counts[tenant_id] = await service.rotate_all_secrets(tenant_id)
    finally:
        await close_db_connections()

    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description="Re-encrypt tenant secrets under the current key.")
    parser.add_argument("tenant_ids", nargs="+", help="Tenant identifiers to rotate")
    args = parser.parse_args()

    setup_logging()
    counts = asyncio.run(rotate(args.tenant_ids))

    for tenant_id, rotated in counts.items():
        print(f"{tenant_id}: {rotated} secret(s) rotated")


if __name__ == "__main__":
    main()
