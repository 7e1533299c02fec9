"""
FastAPI relay for Tube file shares.

This server:
- Pairs one sender with one receiver under a random share code
- Hands the receiver's public key to the sender
- Forwards metadata, encrypted chunks and acknowledgements between them
- Never sees plaintext or private keys, and stores nothing
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, status
from pydantic import BaseModel

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
    decode_as,
    encode_share_code,
    decode_share_code,
)
from . import config
from .shares import Share, ShareRegistry, ShareStatus


logger = logging.getLogger(__name__)


# Pydantic models for API
class Health(BaseModel):
    status: str
    pending: int
    active: int


class ShareInfo(BaseModel):
    share_code: str
    status: ShareStatus


registry = ShareRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Relay started")
    yield
    logger.info("Relay shutting down with %d pending and %d active shares",
                len(registry.awaiting), len(registry.active))


app = FastAPI(
    title="Tube Relay",
    description="Relay for end-to-end encrypted peer-to-peer file shares",
    version="1.0.0",
    lifespan=lifespan
)


async def receive_frame(websocket: WebSocket) -> bytes:
    """
    Wait for the next binary frame.

    Raises:
        WebSocketDisconnect: If the peer went away
        ProtocolError: If the peer sent a text frame
    """
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
    data = message.get("bytes")
    if data is None:
        raise ProtocolError("Expected a binary frame")
    return data


async def relay_acknowledge(receiver: WebSocket, sender: WebSocket, expected: int):
    """Forward the receiver's acknowledgement of `expected` to the sender"""
    frame = await receive_frame(receiver)
    ack = decode_as(frame, Acknowledge)
    if ack.chunk_number != expected:
        raise ProtocolError(f"Expected acknowledgement of {expected} got {ack.chunk_number}")
    await sender.send_bytes(frame)


async def facilitate_share(share: Share, receiver: WebSocket):
    """
    Run the exchange between a sender and the receiver that joined.

    Args:
        share: Share whose sender has been accepted
        receiver: Receiver's accepted WebSocket
    """
    sender = share.sender
    code = encode_share_code(share.share_code)

    initiation = decode_as(await receive_frame(receiver), ReceiverInitiation)
    await receiver.send_bytes(encode(ReceiverAccepted()))
    await sender.send_bytes(encode(Ready(public_key=initiation.public_key)))
    logger.info("Share %s: receiver joined, public key handed to sender", code)

    frame = await receive_frame(sender)
    metadata = decode_as(frame, Metadata)
    await receiver.send_bytes(frame)
    await relay_acknowledge(receiver, sender, METADATA_ACK)

    for expected in range(metadata.number_of_chunks):
        frame = await receive_frame(sender)
        chunk = decode_as(frame, DataChunk)
        if chunk.chunk_number != expected:
            raise ProtocolError(f"Expected chunk {expected} got {chunk.chunk_number}")
        await receiver.send_bytes(frame)
        await relay_acknowledge(receiver, sender, expected)

    logger.info("Share %s: %d chunk(s) delivered", code, metadata.number_of_chunks)


async def wait_for_receiver(share: Share) -> WebSocket:
    """
    Wait for a receiver to join while watching the sender's socket.

    The sender must stay silent until READY, so any frame or a disconnect
    from it ends the share.

    Raises:
        asyncio.TimeoutError: If no receiver joined in time
        WebSocketDisconnect: If the sender went away
        ProtocolError: If the sender spoke out of turn
    """
    sender_frame = asyncio.ensure_future(receive_frame(share.sender))
    try:
        done, _ = await asyncio.wait(
            {share.receiver, sender_frame},
            timeout=config.HANDSHAKE_TIMEOUT,
            return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        if not sender_frame.done():
            sender_frame.cancel()

    if share.receiver in done:
        return share.receiver.result()
    if sender_frame in done:
        sender_frame.result()
        raise ProtocolError("Sender sent a frame before a receiver joined")
    raise asyncio.TimeoutError()


async def close_quietly(websocket: WebSocket, reason: str = None):
    """Send an ERROR frame if there is a reason, then close"""
    try:
        if reason:
            await websocket.send_bytes(encode(Error(reason=reason)))
        await websocket.close()
    except Exception as e:
        # Peer already gone
        logger.debug("Closing WebSocket failed: %s", e)


@app.get("/api/health", response_model=Health)
async def health():
    """Relay liveness and share counts"""
    return Health(
        status="ok",
        pending=len(registry.awaiting),
        active=len(registry.active)
    )


@app.get("/api/shares/{share_code:path}", response_model=ShareInfo)
async def get_share(share_code: str):
    """
    Report whether a share is waiting for its receiver.

    Receivers call this before connecting so a mistyped code fails early.
    """
    try:
        code = decode_share_code(share_code)
    except ProtocolError as e:
        raise HTTPException(status_code=400, detail=str(e))

    share_status = registry.status(code)
    if share_status is None:
        raise HTTPException(status_code=404, detail="Share not found")

    return ShareInfo(share_code=share_code, status=share_status)


@app.websocket("/send")
async def send_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for senders.

    The sender's task drives the whole share: it waits for a receiver to
    join and then relays frames in both directions.
    """
    await websocket.accept()
    share = None
    receiver = None
    error = None

    try:
        decode_as(await receive_frame(websocket), SenderInitiation)
        share = registry.create(websocket)
        await websocket.send_bytes(encode(SenderAccepted(share_code=share.share_code)))
        logger.info("Share %s awaiting receiver", encode_share_code(share.share_code))

        receiver = await wait_for_receiver(share)
        await facilitate_share(share, receiver)

    except ProtocolError as e:
        logger.warning("Protocol error: %s", e)
        error = str(e)
    except asyncio.TimeoutError:
        logger.info("Share %s expired without a receiver", encode_share_code(share.share_code))
        error = "No receiver joined in time"
    except WebSocketDisconnect:
        logger.info("Peer disconnected")
        error = "Peer disconnected"
    except Exception:
        logger.exception("Relay error")
        error = "Relay error"
        raise
    finally:
        if share:
            registry.remove(share)
            if not share.receiver.done():
                share.receiver.cancel()
        await close_quietly(websocket, error)
        if receiver is not None:
            await close_quietly(receiver, error)
        if share:
            share.finished.set()


@app.websocket("/receive")
async def receive_endpoint(websocket: WebSocket, share_code: str = ""):
    """
    WebSocket endpoint for receivers.

    The socket is only held open here; the sender's task reads and writes
    it until the share is finished.
    """
    try:
        code = decode_share_code(share_code)
    except ProtocolError as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
        return

    share = registry.claim(code)
    if share is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Share not found")
        return

    try:
        await websocket.accept()
    except Exception:
        registry.remove(share)
        if not share.receiver.done():
            share.receiver.set_exception(WebSocketDisconnect(status.WS_1011_INTERNAL_ERROR))
        raise

    share.attach_receiver(websocket)
    await share.finished.wait()


def run():
    """Start the relay with uvicorn"""
    import uvicorn

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
