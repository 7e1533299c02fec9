"""
Relay server pairing senders and receivers by share code.
"""
