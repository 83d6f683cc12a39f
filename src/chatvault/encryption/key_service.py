import base64
import binascii
import logging

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, hmac


class KeyService:
    """
    Derives per-conversation AES keys.

    With a master key the conversation key is HMAC-SHA256(master, conversation_id).
    Without one, keys come from SHA-256("conversation-key-" + conversation_id), which anyone
    can recompute; that mode has to be switched on explicitly with allow_insecure_fallback.

    Keys are recomputed on every call and never persisted. Changing the master key makes
    every previously stored message undecryptable.
    """
    __slots__ = ("_master_key", "_logger", "_fallback_warned")

    def __init__(
            self,
            master_key: str | None,
            allow_insecure_fallback: bool = False,
            logger: logging.Logger | None = None
    ):
        self._logger = logger or logging.getLogger(__name__)
        self._fallback_warned = False

        if master_key:
            try:
                self._master_key = base64.b64decode(master_key, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError("MASTER_ENCRYPTION_KEY must be base64 encoded") from e
            if not self._master_key:
                raise ValueError("MASTER_ENCRYPTION_KEY decodes to an empty key")
        elif allow_insecure_fallback:
            self._master_key = None
        else:
            raise ValueError(
                "MASTER_ENCRYPTION_KEY is not set. Set ALLOW_INSECURE_KEY_FALLBACK=true "
                "to use deterministic development keys."
            )

    @property
    def uses_master_key(self) -> bool:
        return self._master_key is not None

    def get_conversation_key(self, conversation_id: str) -> str:
        """
        Get the base64 encoded 32 byte key for a conversation.
        :param conversation_id:
        :return:
        """
        if self._master_key is not None:
            h = hmac.HMAC(self._master_key, hashes.SHA256(), backend=default_backend())
            h.update(conversation_id.encode("utf-8"))
            return base64.b64encode(h.finalize()).decode("ascii")

        if not self._fallback_warned:
            self._logger.warning("Deriving conversation keys without a master key (insecure, dev only)")
            self._fallback_warned = True

        digest = hashes.Hash(hashes.SHA256(), backend=default_backend())
        digest.update(f"conversation-key-{conversation_id}".encode("utf-8"))
        return base64.b64encode(digest.finalize()).decode("ascii")
