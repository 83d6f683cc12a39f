from dataclasses import dataclass
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 12  # 96-bit GCM nonce
TAG_LENGTH = 16


class EncryptionError(Exception):
    pass


class InvalidKeyLength(EncryptionError):
    def __init__(self, actual: int):
        super().__init__(f"Invalid key length. Expected {KEY_LENGTH} bytes, got {actual}")
        self.actual = actual


class AuthenticationFailure(EncryptionError):
    pass


@dataclass(frozen=True)
class EncryptedEnvelope:
    ciphertext: str
    iv: str


def _decode_key(key_b64: str) -> bytes:
    try:
        key = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidKeyLength(0)
    if len(key) != KEY_LENGTH:
        raise InvalidKeyLength(len(key))
    return key


def encrypt_message(plaintext: str, key_b64: str) -> EncryptedEnvelope:
    """
    Encrypt plaintext with AES-256-GCM.
    :param plaintext: message text
    :param key_b64: base64-encoded 32 byte key
    :return: envelope with base64 ciphertext (auth tag appended) and base64 IV
    """
    key = _decode_key(key_b64)
    iv = os.urandom(IV_LENGTH)

    encryptor = Cipher(algorithms.AES(key), modes.GCM(iv), backend=default_backend()).encryptor()
    ct = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()

    return EncryptedEnvelope(
        ciphertext=base64.b64encode(ct + encryptor.tag).decode("ascii"),
        iv=base64.b64encode(iv).decode("ascii"),
    )


def decrypt_message(ciphertext_b64: str, iv_b64: str, key_b64: str) -> str:
    """
    Decrypt an envelope produced by encrypt_message.
    :param ciphertext_b64: base64 ciphertext with the 16 byte tag at the end
    :param iv_b64: base64 IV
    :param key_b64: base64-encoded 32 byte key
    :return: plaintext
    :raises InvalidKeyLength: key does not decode to 32 bytes
    :raises AuthenticationFailure: tag does not verify or the envelope is malformed
    """
    key = _decode_key(key_b64)

    try:
        combined = base64.b64decode(ciphertext_b64, validate=True)
        iv = base64.b64decode(iv_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AuthenticationFailure("Malformed envelope encoding") from e

    if len(combined) < TAG_LENGTH:
        raise AuthenticationFailure("Ciphertext shorter than authentication tag")

    ct, tag = combined[:-TAG_LENGTH], combined[-TAG_LENGTH:]

    try:
        decryptor = Cipher(algorithms.AES(key), modes.GCM(iv, tag), backend=default_backend()).decryptor()
        pt = decryptor.update(ct) + decryptor.finalize()
    except InvalidTag as e:
        raise AuthenticationFailure("Authentication tag mismatch") from e
    except ValueError as e:
        # modes.GCM rejects IVs outside 8..128 bytes
        raise AuthenticationFailure(str(e)) from e

    return pt.decode("utf-8")
