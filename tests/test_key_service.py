import base64
import hashlib
import hmac
import logging

import pytest

from chatvault.encryption import KeyService, encrypt_message, decrypt_message

MASTER = base64.b64encode(b"m" * 32).decode("ascii")


def test_same_conversation_gets_same_key():
    service = KeyService(MASTER)
    assert service.get_conversation_key("conv-1") == service.get_conversation_key("conv-1")


def test_separate_instances_agree():
    assert KeyService(MASTER).get_conversation_key("conv-1") == KeyService(MASTER).get_conversation_key("conv-1")


def test_different_conversations_get_different_keys():
    service = KeyService(MASTER)
    keys = {service.get_conversation_key(f"conv-{i}") for i in range(200)}
    assert len(keys) == 200


def test_key_is_hmac_of_conversation_id():
    expected = hmac.new(b"m" * 32, b"conv-1", hashlib.sha256).digest()
    key = KeyService(MASTER).get_conversation_key("conv-1")

    assert base64.b64decode(key) == expected


def test_master_key_changes_every_key():
    other = base64.b64encode(b"n" * 32).decode("ascii")
    assert KeyService(MASTER).get_conversation_key("conv-1") != KeyService(other).get_conversation_key("conv-1")


def test_derived_key_works_with_codec():
    key = KeyService(MASTER).get_conversation_key("conv-1")
    envelope = encrypt_message("hello", key)
    assert decrypt_message(envelope.ciphertext, envelope.iv, key) == "hello"


def test_missing_master_key_is_refused_by_default():
    with pytest.raises(ValueError):
        KeyService(None)


def test_master_key_must_be_base64():
    with pytest.raises(ValueError):
        KeyService("definitely not base64 ***")


def test_fallback_is_deterministic_sha256(caplog):
    service = KeyService(None, allow_insecure_fallback=True)
    expected = hashlib.sha256(b"conversation-key-conv-1").digest()

    with caplog.at_level(logging.WARNING):
        first = service.get_conversation_key("conv-1")
        second = service.get_conversation_key("conv-1")

    assert not service.uses_master_key
    assert first == second
    assert base64.b64decode(first) == expected
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
