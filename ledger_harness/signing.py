"""
Signatures over prefixed digests, as expected by on-chain ecrecover checks.

sign_prefixed_hashed(payload, key):
    keccak(payload) -> keccak("\\x19Ethereum Signed Message:\\n32" + digest) -> sign
The result is r (32 bytes) + s (32 bytes) + v (1 byte, 27/28).
"""

from typing import Tuple, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_utils import keccak
from hexbytes import HexBytes

SIGNED_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"
SIGNATURE_LENGTH = 65

Payload = Union[bytes, bytearray, str]


def _to_bytes(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return bytes(HexBytes(payload))
    return bytes(payload)


def _key_bytes(private_key) -> bytes:
    key = getattr(private_key, "key", private_key)
    return bytes(HexBytes(key))


def prefixed_digest(digest: Payload) -> bytes:
    digest = _to_bytes(digest)
    if len(digest) != 32:
        raise ValueError(f"digest must be 32 bytes, got {len(digest)}")
    return keccak(SIGNED_MESSAGE_PREFIX + digest)


def double_hash(payload: Payload) -> bytes:
    return prefixed_digest(keccak(_to_bytes(payload)))


def sign_prefixed_digest(digest: Payload, private_key) -> HexBytes:
    """Sign a digest the caller already hashed (only the prefix hash is applied here)."""
    digest = _to_bytes(digest)
    if len(digest) != 32:
        raise ValueError(f"digest must be 32 bytes, got {len(digest)}")
    message = encode_defunct(primitive=digest)
    signed = Account.sign_message(message, private_key=_key_bytes(private_key))
    return HexBytes(signed.signature)


def sign_prefixed_hashed(payload: Payload, private_key) -> HexBytes:
    return sign_prefixed_digest(keccak(_to_bytes(payload)), private_key)


def split_signature(signature: Payload) -> Tuple[int, int, int]:
    sig = _to_bytes(signature)
    if len(sig) != SIGNATURE_LENGTH:
        raise ValueError(f"signature must be {SIGNATURE_LENGTH} bytes, got {len(sig)}")
    r = int.from_bytes(sig[:32], "big")
    s = int.from_bytes(sig[32:64], "big")
    v = sig[64]
    return r, s, v


def recover_signer(digest: Payload, signature: Payload) -> str:
    """Checksummed address that produced `signature` over the final digest."""
    r, s, v = split_signature(signature)
    if v >= 27:
        v -= 27
    public_key = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(_to_bytes(digest))
    return public_key.to_checksum_address()


def public_key_of(private_key) -> keys.PublicKey:
    return keys.PrivateKey(_key_bytes(private_key)).public_key


def verify_prefixed_hashed(payload: Payload, signature: Payload, signer: str) -> bool:
    try:
        recovered = recover_signer(double_hash(payload), signature)
    except (BadSignature, ValueError):
        return False
    return recovered.lower() == signer.lower()
