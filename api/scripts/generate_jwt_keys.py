#!/usr/bin/env python3
"""
Script to generate the RSA key pair used to sign JWT tokens.

Prints the keys as environment variable lines so they can be pasted into a
``.env`` file; without them the API generates a new pair on every start.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.auth import AuthService


def env_line(name: str, pem: str) -> str:
    escaped = pem.strip().replace("\n", "\\n")
    return f'{name}="{escaped}"'


if __name__ == "__main__":
    private_key, public_key = AuthService.generate_key_pair()
    print(env_line("JWT_PRIVATE_KEY", private_key))
    print(env_line("JWT_PUBLIC_KEY", public_key))
