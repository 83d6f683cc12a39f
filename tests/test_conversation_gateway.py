from datetime import datetime, timezone

import pytest

from chatvault.core.database import ConversationType, ParticipantRole
from chatvault.core.exceptions import Conflict, NotAuthorized, NotFound


async def test_create_adds_creator_and_participants(direct_conversation):
    ids = [p.id for p in direct_conversation.participants]

    assert ids == ["alice", "bob"]
    assert direct_conversation.type == ConversationType.DIRECT


async def test_duplicate_conversation_id_conflicts(direct_conversation, conversation_gateway):
    with pytest.raises(Conflict):
        await conversation_gateway.create_conversation("conv-1", "carol", participant_ids=["alice"])


async def test_unknown_participants_get_placeholder_users(conversation_gateway, user_gateway):
    await conversation_gateway.create_conversation("conv-x", "dave", participant_ids=["erin", "erin"])

    erin = await user_gateway.get_user_by_id("erin")
    assert erin is not None
    assert erin.username == "erin"

    conversation = await conversation_gateway.get_conversation("conv-x", "erin")
    assert [p.id for p in conversation.participants] == ["dave", "erin"]


async def test_group_creator_is_admin(direct_conversation, conversation_gateway):
    group = await conversation_gateway.create_conversation(
        "team", "alice", name="Team", conversation_type=ConversationType.GROUP, participant_ids=["bob", "carol"]
    )
    roles = {p.id: p.role for p in group.participants}

    assert roles == {"alice": ParticipantRole.ADMIN, "bob": ParticipantRole.MEMBER, "carol": ParticipantRole.MEMBER}


async def test_get_conversation_checks_existence_then_membership(direct_conversation, conversation_gateway):
    with pytest.raises(NotFound):
        await conversation_gateway.get_conversation("missing", "alice")
    with pytest.raises(NotAuthorized):
        await conversation_gateway.get_conversation("conv-1", "carol")


async def test_listing_orders_by_latest_message(direct_conversation, conversation_gateway, message_gateway):
    await conversation_gateway.create_conversation("conv-2", "alice", participant_ids=["carol"])
    await conversation_gateway.create_conversation("conv-3", "bob", participant_ids=["carol"])
    await message_gateway.send_message(
        "conv-1", "bob", "old", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc)
    )
    await message_gateway.send_message(
        "conv-2", "carol", "new", created_at=datetime(2026, 2, 1, tzinfo=timezone.utc)
    )

    page = await conversation_gateway.get_user_conversations("alice")

    assert [c.id for c in page.conversations] == ["conv-2", "conv-1"]
    assert page.total == 2
    assert page.has_more is False
    assert page.conversations[0].other_participant.id == "carol"


async def test_listing_paginates(direct_conversation, conversation_gateway):
    await conversation_gateway.create_conversation("conv-2", "alice", participant_ids=["carol"])

    page = await conversation_gateway.get_user_conversations("alice", limit=1)

    assert len(page.conversations) == 1
    assert page.has_more is True


async def test_leave_then_rejoin(direct_conversation, conversation_gateway):
    await conversation_gateway.leave_conversation("conv-1", "bob")
    page = await conversation_gateway.get_user_conversations("bob")
    assert page.total == 0

    with pytest.raises(NotAuthorized):
        await conversation_gateway.leave_conversation("conv-1", "bob")
    with pytest.raises(NotAuthorized):
        await conversation_gateway.add_participant("conv-1", "bob", "carol")

    conversation = await conversation_gateway.add_participant("conv-1", "alice", "bob")
    assert [p.id for p in conversation.participants] == ["alice", "bob"]


async def test_add_unknown_user_is_not_found(direct_conversation, conversation_gateway):
    with pytest.raises(NotFound):
        await conversation_gateway.add_participant("conv-1", "alice", "nobody")
