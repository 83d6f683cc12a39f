import base64
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, func

from chatvault.core.database import Message
from chatvault.core.dto import MessageQuery
from chatvault.core.exceptions import NotAuthorized, NotFound
from chatvault.core.gateways import MessageGateway, UNDECRYPTABLE_PLACEHOLDER
from chatvault.encryption import KeyService

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _seed(message_gateway, count=5):
    sent = []
    for i in range(count):
        sent.append(await message_gateway.send_message(
            "conv-1", "alice" if i % 2 == 0 else "bob", f"msg{i + 1}",
            created_at=T0 + timedelta(seconds=i)
        ))
    return sent


async def test_send_returns_plaintext_and_stores_ciphertext(direct_conversation, message_gateway, db_manager):
    message = await message_gateway.send_message("conv-1", "alice", "hello bob", created_at=T0)

    assert message.text == "hello bob"
    assert message.sender_name == "Alice"
    assert message.created_at == T0

    async with db_manager.session() as session:
        row = await session.get(Message, message.id)
    assert "hello bob" not in row.ciphertext
    assert len(base64.b64decode(row.iv)) == 12


async def test_send_without_timestamp_uses_server_time(direct_conversation, message_gateway):
    before = datetime.now(timezone.utc)
    message = await message_gateway.send_message("conv-1", "alice", "now")

    assert message.created_at >= before - timedelta(seconds=1)


async def test_send_updates_conversation_pointer(direct_conversation, message_gateway, conversation_gateway):
    message = await message_gateway.send_message("conv-1", "bob", "hey", created_at=T0)
    conversation = await conversation_gateway.get_conversation("conv-1", "alice")

    assert conversation.last_message_id == message.id
    assert conversation.last_message_at == T0


async def test_authorization_gate_follows_participation(direct_conversation, message_gateway, conversation_gateway):
    with pytest.raises(NotAuthorized):
        await message_gateway.send_message("conv-1", "carol", "let me in")
    with pytest.raises(NotAuthorized):
        await message_gateway.get_messages("conv-1", "carol")

    await conversation_gateway.add_participant("conv-1", "alice", "carol")
    assert await conversation_gateway.is_active_participant("conv-1", "carol")

    await message_gateway.send_message("conv-1", "carol", "thanks")
    page = await message_gateway.get_messages("conv-1", "carol")
    assert [m.text for m in page.messages] == ["thanks"]

    await conversation_gateway.leave_conversation("conv-1", "carol")
    assert not await conversation_gateway.is_active_participant("conv-1", "carol")

    with pytest.raises(NotAuthorized):
        await message_gateway.send_message("conv-1", "carol", "again")
    with pytest.raises(NotAuthorized):
        await message_gateway.get_messages("conv-1", "carol")


async def test_unknown_conversation_is_not_authorized(direct_conversation, message_gateway):
    with pytest.raises(NotAuthorized):
        await message_gateway.send_message("nope", "alice", "hi")


async def test_limit_reports_has_more(direct_conversation, message_gateway):
    await _seed(message_gateway)

    page = await message_gateway.get_messages("conv-1", "alice", MessageQuery(limit=2))

    assert [m.text for m in page.messages] == ["msg1", "msg2"]
    assert page.has_more is True
    assert page.total == 5


async def test_after_cursor_returns_later_messages(direct_conversation, message_gateway):
    sent = await _seed(message_gateway)

    page = await message_gateway.get_messages(
        "conv-1", "alice", MessageQuery(after_message_id=sent[2].id)
    )

    assert [m.text for m in page.messages] == ["msg4", "msg5"]


async def test_before_cursor_returns_earlier_messages(direct_conversation, message_gateway):
    sent = await _seed(message_gateway)

    page = await message_gateway.get_messages(
        "conv-1", "alice", MessageQuery(before_message_id=sent[2].id)
    )

    assert [m.text for m in page.messages] == ["msg1", "msg2"]


async def test_unknown_cursor_is_ignored(direct_conversation, message_gateway):
    await _seed(message_gateway, count=3)

    page = await message_gateway.get_messages(
        "conv-1", "alice", MessageQuery(after_message_id="missing")
    )

    assert len(page.messages) == 3


async def test_messages_are_chronological_regardless_of_send_order(direct_conversation, message_gateway):
    await message_gateway.send_message("conv-1", "alice", "second", created_at=T0 + timedelta(minutes=1))
    await message_gateway.send_message("conv-1", "bob", "first", created_at=T0)

    page = await message_gateway.get_messages("conv-1", "alice")

    assert [m.text for m in page.messages] == ["first", "second"]


async def test_undecryptable_message_becomes_placeholder(direct_conversation, message_gateway, db_manager, logger):
    await message_gateway.send_message("conv-1", "alice", "readable", created_at=T0)
    broken = await message_gateway.send_message("conv-1", "bob", "tampered", created_at=T0 + timedelta(seconds=1))

    async with db_manager.session() as session:
        row = await session.get(Message, broken.id)
        raw = bytearray(base64.b64decode(row.ciphertext))
        raw[0] ^= 0xFF
        row.ciphertext = base64.b64encode(bytes(raw)).decode("ascii")

    page = await message_gateway.get_messages("conv-1", "alice")

    assert [m.text for m in page.messages] == ["readable", UNDECRYPTABLE_PLACEHOLDER]


async def test_rotated_master_key_degrades_every_message(direct_conversation, message_gateway, db_manager, logger):
    await _seed(message_gateway, count=2)

    rotated = KeyService(base64.b64encode(b"r" * 32).decode("ascii"), logger=logger)
    page = await MessageGateway(db_manager, rotated, logger).get_messages("conv-1", "alice")

    assert [m.text for m in page.messages] == [UNDECRYPTABLE_PLACEHOLDER] * 2


async def test_failed_pointer_update_rolls_back_insert(
        direct_conversation, message_gateway, conversation_gateway, db_manager, monkeypatch
):
    first = await message_gateway.send_message("conv-1", "alice", "kept", created_at=T0)

    async def fail(*args, **kwargs):
        raise RuntimeError("injected fault")

    monkeypatch.setattr(MessageGateway, "_touch_conversation", fail)

    with pytest.raises(RuntimeError):
        await message_gateway.send_message("conv-1", "alice", "lost", created_at=T0 + timedelta(seconds=1))

    async with db_manager.session() as session:
        count = (await session.execute(select(func.count()).select_from(Message))).scalar_one()
    assert count == 1

    conversation = await conversation_gateway.get_conversation("conv-1", "alice")
    assert conversation.last_message_id == first.id


async def test_reply_must_reference_same_conversation(direct_conversation, message_gateway):
    parent = await message_gateway.send_message("conv-1", "alice", "question")
    reply = await message_gateway.send_message("conv-1", "bob", "answer", reply_to_message_id=parent.id)

    assert reply.reply_to_message_id == parent.id
    with pytest.raises(NotFound):
        await message_gateway.send_message("conv-1", "bob", "orphan", reply_to_message_id="missing")


async def test_edit_reencrypts_and_marks_edited(direct_conversation, message_gateway, db_manager):
    message = await message_gateway.send_message("conv-1", "alice", "draft", created_at=T0)
    async with db_manager.session() as session:
        old_iv = (await session.get(Message, message.id)).iv

    edited = await message_gateway.edit_message(message.id, "alice", "final")

    assert edited.text == "final"
    assert edited.edited_at is not None
    async with db_manager.session() as session:
        assert (await session.get(Message, message.id)).iv != old_iv

    page = await message_gateway.get_messages("conv-1", "bob")
    assert [m.text for m in page.messages] == ["final"]


async def test_only_sender_can_edit_or_delete(direct_conversation, message_gateway):
    message = await message_gateway.send_message("conv-1", "alice", "mine")

    with pytest.raises(NotAuthorized):
        await message_gateway.edit_message(message.id, "bob", "hijacked")
    with pytest.raises(NotAuthorized):
        await message_gateway.delete_message(message.id, "bob")


async def test_deleted_messages_are_hidden(direct_conversation, message_gateway):
    sent = await _seed(message_gateway, count=3)

    await message_gateway.delete_message(sent[1].id, "bob")
    page = await message_gateway.get_messages("conv-1", "alice")

    assert [m.text for m in page.messages] == ["msg1", "msg3"]
    assert page.total == 2
    with pytest.raises(NotFound):
        await message_gateway.delete_message(sent[1].id, "bob")


async def test_deleting_latest_message_moves_conversation_pointer(
        direct_conversation, message_gateway, conversation_gateway
):
    sent = await _seed(message_gateway, count=2)

    await message_gateway.delete_message(sent[1].id, "bob")
    conversation = await conversation_gateway.get_conversation("conv-1", "alice")
    assert conversation.last_message_id == sent[0].id
    assert conversation.last_message_at == sent[0].created_at

    await message_gateway.delete_message(sent[0].id, "alice")
    conversation = await conversation_gateway.get_conversation("conv-1", "alice")
    assert conversation.last_message_id is None
    assert conversation.last_message_at is None
