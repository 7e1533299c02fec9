"""
Binary frames exchanged between peers and the relay.
"""

from .messages import (
    Opcode,
    PROTOCOL_VERSION,
    SHARE_CODE_LENGTH,
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
    decode_as,
    encode_share_code,
    decode_share_code,
)

__all__ = [
    'Opcode',
    'PROTOCOL_VERSION',
    'SHARE_CODE_LENGTH',
    'METADATA_ACK',
    'ProtocolError',
    'SenderInitiation',
    'SenderAccepted',
    'ReceiverInitiation',
    'ReceiverAccepted',
    'Ready',
    'Metadata',
    'DataChunk',
    'Acknowledge',
    'Error',
    'encode',
    'decode',
    'decode_as',
    'encode_share_code',
    'decode_share_code',
]
