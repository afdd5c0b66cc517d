"""Ed25519 signer keys (PyNaCl)."""

from __future__ import annotations

from dataclasses import dataclass, field

import nacl.encoding
import nacl.signing


@dataclass(frozen=True)
class SignerKeyPair:
    public_key: bytes
    private_key: bytes = field(repr=False)

    @property
    def public_key_hex(self) -> str:
        return "0x" + self.public_key.hex()

    @property
    def private_key_hex(self) -> str:
        return "0x" + self.private_key.hex()


@dataclass(frozen=True)
class SignerCredential:
    """Issued once a signer request is approved; owned by the caller afterwards."""

    fid: int
    key_pair: SignerKeyPair


def generate_key_pair() -> SignerKeyPair:
    signing_key = nacl.signing.SigningKey.generate()
    return SignerKeyPair(
        public_key=signing_key.verify_key.encode(encoder=nacl.encoding.RawEncoder),
        private_key=signing_key.encode(encoder=nacl.encoding.RawEncoder),
    )

