"""
In-memory registry of shares.

A share is created when a sender connects and waits in `awaiting` until a
receiver claims it with the share code, then moves to `active` until the
transfer ends. All mutations happen on the event loop without awaiting in
between, so no lock is required.
"""

import asyncio
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from protocol import SHARE_CODE_LENGTH


class ShareStatus(str, Enum):
    AWAITING_RECEIVER = "awaiting_receiver"
    ACTIVE = "active"


@dataclass
class Share:
    """
    One sender/receiver pairing.

    Attributes:
        share_code: Random code the receiver uses to join
        sender: Sender's WebSocket
        receiver: Future resolving to the receiver's WebSocket
        finished: Set once the relay is done with both sockets
    """
    share_code: bytes
    sender: Any
    receiver: asyncio.Future
    finished: asyncio.Event = field(default_factory=asyncio.Event)

    def attach_receiver(self, websocket):
        """Hand the accepted receiver socket to the sender's task"""
        if not self.receiver.done():
            self.receiver.set_result(websocket)


class ShareRegistry:
    """Tracks shares awaiting a receiver and shares in progress"""

    def __init__(self):
        self.awaiting: Dict[bytes, Share] = {}
        self.active: Dict[bytes, Share] = {}

    def create(self, sender) -> Share:
        """
        Register a new share for a sender.

        Args:
            sender: Sender's WebSocket

        Returns:
            Share with a code unused by any pending or active share
        """
        while True:
            share_code = secrets.token_bytes(SHARE_CODE_LENGTH)
            if share_code not in self.awaiting and share_code not in self.active:
                break

        share = Share(
            share_code=share_code,
            sender=sender,
            receiver=asyncio.get_running_loop().create_future()
        )
        self.awaiting[share_code] = share
        return share

    def claim(self, share_code: bytes) -> Optional[Share]:
        """
        Move a pending share to active.

        Returns:
            The share, or None if no share awaits a receiver under this code
        """
        share = self.awaiting.pop(share_code, None)
        if share is not None:
            self.active[share_code] = share
        return share

    def remove(self, share: Share):
        """Forget a share, whatever state it is in"""
        if self.awaiting.get(share.share_code) is share:
            del self.awaiting[share.share_code]
        if self.active.get(share.share_code) is share:
            del self.active[share.share_code]

    def status(self, share_code: bytes) -> Optional[ShareStatus]:
        if share_code in self.awaiting:
            return ShareStatus.AWAITING_RECEIVER
        if share_code in self.active:
            return ShareStatus.ACTIVE
        return None
