#!/usr/bin/env python3
"""
Generate Encryption Key Script.

Prints a fresh random value for ENCRYPTION_KEY.
Usage: python scripts/generate_encryption_key.py
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from engage_core.security.encryption import EncryptionService


def main() -> None:
    key = EncryptionService.generate_key()
    print(key)
    print(
        "\nSet it as ENCRYPTION_KEY. When replacing an existing key, move the old "
        "one to ENCRYPTION_KEY_PREVIOUS and run scripts/rotate_tenant_secrets.py.",
        file=sys.stderr,
    )


if __name__ == "__main__":
    main()
