"""
Relay settings, read from the environment once at import.
"""

import os


HOST = os.getenv("TUBE_HOST", "0.0.0.0")
PORT = int(os.getenv("TUBE_PORT", "8000"))
# Seconds a sender waits for a receiver to join its share
HANDSHAKE_TIMEOUT = float(os.getenv("TUBE_HANDSHAKE_TIMEOUT", "300"))
LOG_LEVEL = os.getenv("TUBE_LOG_LEVEL", "INFO").upper()
