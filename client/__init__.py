"""
Peer client for sending and receiving files through the relay.
"""
