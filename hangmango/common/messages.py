import binascii, json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from hangmango.common.config import ENC
from hangmango.common.crypto import b64, b64d
from hangmango.common.errors import MalformedEnvelope


class Kind(str, Enum):
    UNTAGGED = ""               # a bare application turn (guess or hint)
    PUBKEY_REQUEST = "PUBKEYREQ"
    PUBKEY_RESPONSE = "PUBKEYRESP"
    SYMKEY_REQUEST = "SYMKEYREQ"
    SYMKEY_RESPONSE = "SYMKEYRESP"
    APPLICATION = "APPLICATION"
    GAME_OVER = "GAME OVER"


HANDSHAKE_KINDS = frozenset({Kind.PUBKEY_REQUEST, Kind.PUBKEY_RESPONSE,
                             Kind.SYMKEY_REQUEST, Kind.SYMKEY_RESPONSE})


# Plaintext payload; only ever travels inside an Envelope.
@dataclass
class Message:
    kind: Kind = Kind.UNTAGGED
    content: bytes = b""
    commitment: bytes = b""     # game hash, first hint and confirmed guesses only


# Wire unit: tag is the AEAD nonce once a session key exists, otherwise a signature (or empty).
@dataclass
class Envelope:
    ciphertext: bytes = b""
    tag: bytes = b""


def _dumps(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode(ENC)

def _loads(data: bytes) -> Dict[str, Any]:
    try:
        obj = json.loads(data.decode(ENC))
    except ValueError as exc:   # covers UnicodeDecodeError and JSONDecodeError
        raise MalformedEnvelope(f"not a JSON record: {exc}") from exc
    if not isinstance(obj, dict):
        raise MalformedEnvelope(f"expected a JSON object, got {type(obj).__name__}")
    return obj

def _field(obj: Dict[str, Any], name: str) -> bytes:
    '''Decode an optional base64 field; absent means empty.'''
    value = obj.get(name)
    if value is None:
        return b""
    if not isinstance(value, str):
        raise MalformedEnvelope(f"field {name!r} must be a string")
    try:
        return b64d(value)
    except binascii.Error as exc:
        raise MalformedEnvelope(f"field {name!r} is not base64") from exc


def encode_envelope(env: Envelope) -> bytes:
    ''' Serialize an Envelope to compact JSON, omitting empty fields '''
    obj = {}
    if env.ciphertext:
        obj["ciphertext"] = b64(env.ciphertext)
    if env.tag:
        obj["tag"] = b64(env.tag)
    return _dumps(obj)

def decode_envelope(data: bytes) -> Envelope:
    ''' Inverse of encode_envelope(). Raises MalformedEnvelope. '''
    obj = _loads(data)
    return Envelope(ciphertext=_field(obj, "ciphertext"), tag=_field(obj, "tag"))

def encode_message(msg: Message) -> bytes:
    obj: Dict[str, Any] = {}
    if msg.kind is not Kind.UNTAGGED:
        obj["kind"] = msg.kind.value
    if msg.content:
        obj["content"] = b64(msg.content)
    if msg.commitment:
        obj["commitment"] = b64(msg.commitment)
    return _dumps(obj)

def decode_message(data: bytes) -> Message:
    '''
    Parse the plaintext of an opened Envelope.
    Unknown kinds are rejected rather than treated as untagged, so a receiver
    never guesses the meaning of content.
    '''
    obj = _loads(data)
    raw_kind = obj.get("kind", "")
    if not isinstance(raw_kind, str):
        raise MalformedEnvelope("field 'kind' must be a string")
    try:
        kind = Kind(raw_kind)
    except ValueError as exc:
        raise MalformedEnvelope(f"unknown message kind {raw_kind!r}") from exc
    return Message(kind=kind, content=_field(obj, "content"),
                   commitment=_field(obj, "commitment"))
