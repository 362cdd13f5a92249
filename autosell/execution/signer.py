# autosell/execution/signer.py
"""本地签名. 私钥只在单次签名调用内被解析为 Keypair, 不缓存."""

import base64
import binascii
import json
from dataclasses import dataclass, field

import base58
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from autosell.errors import ValidationError


@dataclass(frozen=True)
class WalletKey:
    address: str
    secret: str = field(repr=False)

    @classmethod
    def from_secret(cls, secret: str) -> "WalletKey":
        keypair = parse_private_key(secret)
        return cls(address=str(keypair.pubkey()), secret=secret)


@dataclass(frozen=True)
class SignedTransaction:
    raw: bytes
    signature: str

    @property
    def base64(self) -> str:
        return base64.b64encode(self.raw).decode()


def _keypair_from_bytes(data: bytes) -> Keypair:
    if len(data) == 64:
        return Keypair.from_bytes(data)
    if len(data) == 32:
        return Keypair.from_seed(data)
    raise ValidationError(f"invalid private key length: {len(data)} bytes")


def parse_private_key(raw: str) -> Keypair:
    """支持 base58, JSON 数组 "[1,2,...]" 和逗号分隔的字节列表"""
    s = (raw or "").strip()
    if not s:
        raise ValidationError("empty private key")

    try:
        if s.startswith("[") and s.endswith("]"):
            values = json.loads(s)
            return _keypair_from_bytes(bytes(int(v) for v in values))
        if "," in s:
            return _keypair_from_bytes(bytes(int(v.strip()) for v in s.split(",")))
        return _keypair_from_bytes(base58.b58decode(s))
    except ValidationError:
        raise
    except (ValueError, TypeError) as e:
        raise ValidationError("Invalid private key format") from e


def sign_transaction(wallet: WalletKey, unsigned_tx_base64: str) -> SignedTransaction:
    try:
        unsigned = VersionedTransaction.from_bytes(base64.b64decode(unsigned_tx_base64))
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"cannot decode swap transaction: {e}") from e

    keypair = parse_private_key(wallet.secret)
    signed = VersionedTransaction(unsigned.message, [keypair])
    return SignedTransaction(raw=bytes(signed), signature=str(signed.signatures[0]))
