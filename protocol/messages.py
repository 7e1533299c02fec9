"""
Share Protocol Frames

Every frame is `opcode (1 byte) | version (1 byte) | body`. Integers in
bodies are little-endian. Trailing bytes after a complete body are
ignored.

Exchange:
1. Sender -> relay: SENDER_INITIATION
2. Relay -> sender: SENDER_ACCEPTED (share code)
3. Receiver -> relay: RECEIVER_INITIATION (receiver's encoded public key)
4. Relay -> receiver: RECEIVER_ACCEPTED; relay -> sender: READY (public key)
5. Sender -> receiver: METADATA, acknowledged with chunk number 0xFFFF
6. Sender -> receiver: DATA_CHUNK per chunk, each acknowledged
"""

import base64
import binascii
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Dict, Type, TypeVar


PROTOCOL_VERSION = 0
SHARE_CODE_LENGTH = 5
MAX_SHARE_CODE_CHARS = 8
METADATA_ACK = 0xFFFF

_U16 = struct.Struct("<H")


class ProtocolError(Exception):
    """Frame could not be encoded or decoded"""
    pass


class Opcode(IntEnum):
    SENDER_INITIATION = 0
    SENDER_ACCEPTED = 1
    RECEIVER_INITIATION = 2
    RECEIVER_ACCEPTED = 3
    READY = 4
    METADATA = 5
    DATA_CHUNK = 6
    ACKNOWLEDGE = 7
    ERROR = 8


def _check_u16(name: str, value: int):
    if not 0 <= value <= 0xFFFF:
        raise ProtocolError(f"{name} must fit in 16 bits, got {value}")


def _read_u16(body: bytes, offset: int) -> int:
    if len(body) < offset + 2:
        raise ProtocolError("Incomplete message.")
    return _U16.unpack_from(body, offset)[0]


def _pack_key(public_key: bytes) -> bytes:
    return _U16.pack(len(public_key)) + public_key


def _unpack_key(body: bytes) -> bytes:
    length = _read_u16(body, 0)
    if len(body) < 2 + length:
        raise ProtocolError(f"Too few bytes (expected {length} got {len(body) - 2}).")
    return body[2:2 + length]


def _check_key(public_key: bytes):
    if not public_key:
        raise ProtocolError("Public key must not be empty")
    _check_u16("Public key length", len(public_key))


@dataclass(frozen=True)
class SenderInitiation:
    opcode: ClassVar[Opcode] = Opcode.SENDER_INITIATION

    def to_body(self) -> bytes:
        return b""

    @classmethod
    def from_body(cls, body: bytes) -> 'SenderInitiation':
        return cls()


@dataclass(frozen=True)
class SenderAccepted:
    """Relay's reply to the sender, carrying the new share code"""
    opcode: ClassVar[Opcode] = Opcode.SENDER_ACCEPTED
    share_code: bytes

    def __post_init__(self):
        if len(self.share_code) != SHARE_CODE_LENGTH:
            raise ProtocolError(
                f"Share code should be of length {SHARE_CODE_LENGTH} is actually of length {len(self.share_code)}."
            )

    def to_body(self) -> bytes:
        return bytes(self.share_code)

    @classmethod
    def from_body(cls, body: bytes) -> 'SenderAccepted':
        if len(body) < SHARE_CODE_LENGTH:
            raise ProtocolError("Incomplete message.")
        return cls(share_code=body[:SHARE_CODE_LENGTH])


@dataclass(frozen=True)
class ReceiverInitiation:
    """Receiver joins a share and publishes its encoded public key"""
    opcode: ClassVar[Opcode] = Opcode.RECEIVER_INITIATION
    public_key: bytes

    def __post_init__(self):
        _check_key(self.public_key)

    def to_body(self) -> bytes:
        return _pack_key(self.public_key)

    @classmethod
    def from_body(cls, body: bytes) -> 'ReceiverInitiation':
        return cls(public_key=_unpack_key(body))


@dataclass(frozen=True)
class ReceiverAccepted:
    opcode: ClassVar[Opcode] = Opcode.RECEIVER_ACCEPTED

    def to_body(self) -> bytes:
        return b""

    @classmethod
    def from_body(cls, body: bytes) -> 'ReceiverAccepted':
        return cls()


@dataclass(frozen=True)
class Ready:
    """Relay hands the receiver's public key to the sender"""
    opcode: ClassVar[Opcode] = Opcode.READY
    public_key: bytes

    def __post_init__(self):
        _check_key(self.public_key)

    def to_body(self) -> bytes:
        return _pack_key(self.public_key)

    @classmethod
    def from_body(cls, body: bytes) -> 'Ready':
        return cls(public_key=_unpack_key(body))


@dataclass(frozen=True)
class Metadata:
    """
    File description sent ahead of the data.

    Attributes:
        file_name: Suggested file name (1-255 UTF-8 bytes)
        number_of_chunks: How many DATA_CHUNK frames follow
    """
    opcode: ClassVar[Opcode] = Opcode.METADATA
    file_name: str
    number_of_chunks: int

    def __post_init__(self):
        encoded = self.file_name.encode("utf-8")
        if not 1 <= len(encoded) <= 0xFF:
            raise ProtocolError("file_name length must be between 1 and 255 bytes.")
        _check_u16("number_of_chunks", self.number_of_chunks)

    def to_body(self) -> bytes:
        encoded = self.file_name.encode("utf-8")
        return bytes([len(encoded)]) + encoded + _U16.pack(self.number_of_chunks)

    @classmethod
    def from_body(cls, body: bytes) -> 'Metadata':
        if not body:
            raise ProtocolError("Incomplete message.")
        name_length = body[0]
        if name_length == 0:
            raise ProtocolError("file_name length must be at least 1 byte.")
        expected = 1 + name_length + 2
        if len(body) < expected:
            raise ProtocolError(f"Too few bytes (expected {expected} got {len(body)}).")
        try:
            file_name = body[1:1 + name_length].decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolError("file_name is not valid UTF-8") from None
        return cls(file_name=file_name, number_of_chunks=_read_u16(body, 1 + name_length))


@dataclass(frozen=True)
class DataChunk:
    opcode: ClassVar[Opcode] = Opcode.DATA_CHUNK
    chunk_number: int
    payload: bytes

    def __post_init__(self):
        _check_u16("chunk_number", self.chunk_number)
        _check_u16("Payload length", len(self.payload))

    def to_body(self) -> bytes:
        return _U16.pack(self.chunk_number) + _U16.pack(len(self.payload)) + bytes(self.payload)

    @classmethod
    def from_body(cls, body: bytes) -> 'DataChunk':
        if len(body) < 4:
            raise ProtocolError("Incomplete message.")
        chunk_number = _read_u16(body, 0)
        payload_length = _read_u16(body, 2)
        if len(body) - 4 < payload_length:
            raise ProtocolError("Incomplete message.")
        return cls(chunk_number=chunk_number, payload=body[4:4 + payload_length])


@dataclass(frozen=True)
class Acknowledge:
    """Receipt for a chunk; METADATA_ACK acknowledges the metadata frame"""
    opcode: ClassVar[Opcode] = Opcode.ACKNOWLEDGE
    chunk_number: int

    def __post_init__(self):
        _check_u16("chunk_number", self.chunk_number)

    def to_body(self) -> bytes:
        return _U16.pack(self.chunk_number)

    @classmethod
    def from_body(cls, body: bytes) -> 'Acknowledge':
        return cls(chunk_number=_read_u16(body, 0))


@dataclass(frozen=True)
class Error:
    opcode: ClassVar[Opcode] = Opcode.ERROR
    reason: str

    def to_body(self) -> bytes:
        return self.reason.encode("utf-8")

    @classmethod
    def from_body(cls, body: bytes) -> 'Error':
        return cls(reason=body.decode("utf-8", errors="replace"))


_MESSAGE_TYPES: Dict[Opcode, type] = {
    cls.opcode: cls
    for cls in (
        SenderInitiation, SenderAccepted, ReceiverInitiation, ReceiverAccepted,
        Ready, Metadata, DataChunk, Acknowledge, Error,
    )
}

M = TypeVar("M")


def encode(message) -> bytes:
    """
    Encode a message into a frame.

    Args:
        message: Any of the message dataclasses

    Returns:
        Frame bytes
    """
    return bytes([int(message.opcode), PROTOCOL_VERSION]) + message.to_body()


def decode(blob: bytes):
    """
    Decode a frame into its message.

    Args:
        blob: Frame bytes

    Returns:
        Message dataclass instance

    Raises:
        ProtocolError: If the frame is malformed
    """
    if not blob:
        raise ProtocolError("No data to decode")
    if len(blob) == 1:
        raise ProtocolError("No version byte provided")

    try:
        opcode = Opcode(blob[0])
    except ValueError:
        raise ProtocolError("Invalid opcode provided") from None

    version = blob[1]
    if version != PROTOCOL_VERSION:
        raise ProtocolError(f"Protocol version {version} is not supported")

    return _MESSAGE_TYPES[opcode].from_body(bytes(blob[2:]))


def decode_as(blob: bytes, message_type: Type[M]) -> M:
    """
    Decode a frame that must be of a particular message type.

    Raises:
        ProtocolError: If the frame is malformed or of another type
    """
    message = decode(blob)
    if not isinstance(message, message_type):
        raise ProtocolError(
            f"Message is not a {message_type.opcode.name} is a {message.opcode.name}"
        )
    return message


def encode_share_code(share_code: bytes) -> str:
    """Render a share code the way users type it (standard base64)"""
    return base64.b64encode(share_code).decode("ascii")


def decode_share_code(text: str) -> bytes:
    """
    Parse a user-supplied share code.

    Raises:
        ProtocolError: If the text is not a valid share code
    """
    if not text:
        raise ProtocolError('share_code parameter is not set or is set to "".')
    if len(text) > MAX_SHARE_CODE_CHARS:
        raise ProtocolError("Provided share_code is too long to be a valid share code.")
    try:
        share_code = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise ProtocolError("Provided share_code could not be decoded.") from None
    if len(share_code) != SHARE_CODE_LENGTH:
        raise ProtocolError("Provided share_code could not be decoded.")
    return share_code
