"""
Veil: encrypted secrets, one bundle per project, synced across machines.

Secrets live on disk as ciphertext only. Every device that joins adds its
public key to the shared recipient ledger, and every save encrypts for
all of them.
"""

import os

__version__ = "0.1.0"

VEIL_HOME = os.environ.get("VEIL_HOME", "~/.veil")
