from .codec import (
    EncryptedEnvelope,
    EncryptionError,
    InvalidKeyLength,
    AuthenticationFailure,
    encrypt_message,
    decrypt_message,
)
from .key_service import KeyService
