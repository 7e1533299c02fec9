#!/usr/bin/env python3
"""
CLI Client for Tube File Shares

Provides a command-line interface for:
- Sending a file: announce a share code, encrypt for the receiver's key
- Receiving a file: join a share, publish a fresh public key, decrypt
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Optional, Type, TypeVar
from urllib.parse import urlencode
import websockets
import httpx
from prompt_toolkit import PromptSession

from tubecrypto import CipherConfig, CipherEngine, CryptoError, KeyCodec, PayloadTooLargeError
from protocol import (
    METADATA_ACK,
    ProtocolError,
    SenderInitiation,
    SenderAccepted,
    ReceiverInitiation,
    ReceiverAccepted,
    Ready,
    Metadata,
    DataChunk,
    Acknowledge,
    Error,
    encode,
    decode,
    encode_share_code,
    decode_share_code,
)


logger = logging.getLogger(__name__)

SERVER_URL = os.getenv("TUBE_SERVER_URL", "http://localhost:8000")
LOG_LEVEL = os.getenv("TUBE_LOG_LEVEL", "INFO").upper()
DEFAULT_FILE_NAME = "received_file"

M = TypeVar("M")


class TransferError(Exception):
    """File transfer failed and has to be restarted"""
    pass


def safe_file_name(file_name: str) -> str:
    """Strip any directory part from a name chosen by the other peer"""
    name = Path(file_name.replace("\\", "/")).name
    if name in ("", ".", ".."):
        return DEFAULT_FILE_NAME
    return name


class TubeClient:
    """
    Peer side of a Tube share.
    """

    def __init__(self, server_url: str = SERVER_URL, config: Optional[CipherConfig] = None):
        """
        Initialize the client.

        Args:
            server_url: Base URL of the relay
            config: Cipher parameters, shared with the other peer
        """
        config = config or CipherConfig.from_env()
        self.server_url = server_url.rstrip("/")
        self.ws_url = self.server_url.replace("http", "ws", 1)
        self.codec = KeyCodec(config)
        self.engine = CipherEngine(config)
        self.http_client = httpx.AsyncClient()

    async def close(self):
        await self.http_client.aclose()

    async def _expect(self, websocket, message_type: Type[M]) -> M:
        """Wait for the next frame, which must be of message_type"""
        try:
            frame = await websocket.recv()
        except websockets.exceptions.ConnectionClosed as e:
            raise TransferError(f"Relay closed the connection: {e}") from e

        if isinstance(frame, str):
            raise TransferError("Relay sent a text frame")

        message = decode(frame)
        if isinstance(message, Error):
            raise TransferError(message.reason)
        if not isinstance(message, message_type):
            raise TransferError(
                f"Expected {message_type.opcode.name} got {message.opcode.name}"
            )
        return message

    async def _expect_ack(self, websocket, chunk_number: int):
        ack = await self._expect(websocket, Acknowledge)
        if ack.chunk_number != chunk_number:
            raise TransferError(f"Expected acknowledgement of {chunk_number} got {ack.chunk_number}")

    async def check_share(self, share_code: str) -> str:
        """
        Ask the relay whether a share is waiting for us.

        Returns:
            Share status reported by the relay

        Raises:
            TransferError: If the share does not exist or the code is invalid
        """
        response = await self.http_client.get(f"{self.server_url}/api/shares/{share_code}")

        if response.status_code == 404:
            raise TransferError(f"Share {share_code} not found")
        if response.status_code != 200:
            raise TransferError(response.json().get("detail", "Unknown error"))

        return response.json()["status"]

    async def send_file(self, path: Path, on_share_code: Optional[Callable[[str], None]] = None) -> str:
        """
        Offer a file through the relay.

        Args:
            path: File to send
            on_share_code: Called with the share code as soon as the relay assigns it

        Returns:
            The share code used

        Raises:
            PayloadTooLargeError: If the file does not fit in one encrypted block
            TransferError: If the exchange fails
        """
        path = Path(path)
        data = path.read_bytes()
        if len(data) > self.engine.max_payload:
            raise PayloadTooLargeError(
                f"{path.name} is {len(data)} bytes, at most {self.engine.max_payload} can be sent"
            )

        async with websockets.connect(f"{self.ws_url}/send") as websocket:
            await websocket.send(encode(SenderInitiation()))
            accepted = await self._expect(websocket, SenderAccepted)
            share_code = encode_share_code(accepted.share_code)
            logger.debug("Share code assigned: %s", share_code)
            if on_share_code:
                on_share_code(share_code)

            ready = await self._expect(websocket, Ready)
            public_key = self.codec.decode_key(ready.public_key)
            ciphertext = await asyncio.to_thread(self.engine.encrypt, public_key, data)

            await websocket.send(encode(Metadata(file_name=path.name, number_of_chunks=1)))
            await self._expect_ack(websocket, METADATA_ACK)

            await websocket.send(encode(DataChunk(chunk_number=0, payload=ciphertext)))
            await self._expect_ack(websocket, 0)

        return share_code

    async def receive_file(self, share_code: str, destination: Optional[Path] = None) -> Path:
        """
        Join a share and save the decrypted file.

        Args:
            share_code: Code announced by the sender
            destination: Where to save; defaults to the sender's file name
                in the current directory

        Returns:
            Path the file was written to

        Raises:
            DecryptionFailedError: If a chunk does not decrypt under our key
            TransferError: If the exchange fails
        """
        decode_share_code(share_code)
        await self.check_share(share_code)

        keypair = await asyncio.to_thread(self.codec.generate_keypair)
        encoded_key = self.codec.encode_key(keypair.public_key)

        url = f"{self.ws_url}/receive?{urlencode({'share_code': share_code})}"
        async with websockets.connect(url) as websocket:
            await websocket.send(encode(ReceiverInitiation(public_key=encoded_key)))
            await self._expect(websocket, ReceiverAccepted)

            metadata = await self._expect(websocket, Metadata)
            await websocket.send(encode(Acknowledge(chunk_number=METADATA_ACK)))
            logger.info("Receiving %s in %d chunk(s)", metadata.file_name, metadata.number_of_chunks)

            parts = []
            for expected in range(metadata.number_of_chunks):
                chunk = await self._expect(websocket, DataChunk)
                if chunk.chunk_number != expected:
                    raise TransferError(f"Expected chunk {expected} got {chunk.chunk_number}")
                parts.append(await asyncio.to_thread(self.engine.decrypt, keypair.private_key, chunk.payload))
                await websocket.send(encode(Acknowledge(chunk_number=expected)))

        target = Path(destination) if destination else Path(safe_file_name(metadata.file_name))
        target.write_bytes(b"".join(parts))
        return target


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tube-client", description="End-to-end encrypted file sharing")
    parser.add_argument("--server", default=SERVER_URL, help="Relay URL (default: %(default)s)")
    commands = parser.add_subparsers(dest="command")

    send = commands.add_parser("send", help="Send a file")
    send.add_argument("file", nargs="?")

    receive = commands.add_parser("receive", help="Receive a file")
    receive.add_argument("share_code", nargs="?")
    receive.add_argument("file", nargs="?", help="Where to save (default: sender's file name)")

    return parser


async def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    session = PromptSession()
    client = TubeClient(args.server)

    print("=" * 50)
    print("Tube Encrypted File Share")
    print("=" * 50)

    try:
        command = args.command
        while command not in ("send", "receive"):
            choice = (await session.prompt_async("Send or receive? [s/r]: ")).strip().lower()
            command = {"s": "send", "r": "receive"}.get(choice)

        if command == "send":
            file_name = args.file or (await session.prompt_async("File to send: ")).strip()
            await client.send_file(
                Path(file_name),
                on_share_code=lambda code: print(f"Share code: {code}\nWaiting for receiver...")
            )
            print(f"Sent {file_name}")
        else:
            share_code = args.share_code or (await session.prompt_async("Share code: ")).strip()
            file_name = args.file
            if file_name is None:
                file_name = (await session.prompt_async("Save as (blank for sender's name): ")).strip() or None
            target = await client.receive_file(share_code, Path(file_name) if file_name else None)
            print(f"Saved {target}")
        return 0

    except (CryptoError, ProtocolError, TransferError, OSError, httpx.HTTPError) as e:
        print(f"Transfer failed: {e}")
        print("Restart the exchange to try again.")
        return 1
    finally:
        await client.close()


def configure_logging(level: str = LOG_LEVEL):
    """Show the client's progress messages on stderr"""
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("client").setLevel(level)


def run():
    configure_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)


if __name__ == "__main__":
    run()
