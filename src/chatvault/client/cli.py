"""
Terminal chat against a running chatvault API.

Usage:
    chatvault-chat chat alice conv-1
    chatvault-chat create alice conv-1 --with bob
    chatvault-chat list alice
"""

import argparse
import asyncio
import logging
import sys

from .api_client import ChatApiClient
from .errors import ApiError, NotAuthorizedError, NotFoundError, is_retryable
from .presentation import build_rows, format_time
from .session import ChatSession


def _describe(error: ApiError) -> str:
    if isinstance(error, NotAuthorizedError):
        return "You are not a participant of this conversation."
    if isinstance(error, NotFoundError):
        return "Not found."
    if is_retryable(error):
        return f"{error.message} (try again shortly)"
    return error.message


def _render(session: ChatSession, shown: set[str], me: str):
    for row in build_rows(session.timeline.messages):
        message = row.message
        if message.id in shown or message.id.startswith("temp-"):
            continue
        shown.add(message.id)

        if row.date_separator:
            print(f"--- {row.date_separator} ---")
        who = "you" if message.sender_id == me else (message.sender_name or message.sender_id)
        prefix = "   " if row.grouped else f"[{format_time(message.created_at)}] {who}:"
        print(f"{prefix} {message.text}")


async def _chat(args: argparse.Namespace) -> int:
    async with ChatApiClient(args.base_url, args.user, token=args.token) as client:
        session = ChatSession(client, args.conversation, poll_interval=args.interval)
        try:
            await session.open()
        except ApiError as e:
            print(_describe(e), file=sys.stderr)
            return 1

        shown: set[str] = set()
        _render(session, shown, args.user)
        print("Type a message and press enter; /quit to leave.")

        try:
            while True:
                line = await asyncio.to_thread(sys.stdin.readline)
                if not line or line.strip() == "/quit":
                    break
                if line.strip():
                    await session.send(line)
                _render(session, shown, args.user)
        finally:
            await session.close()
    return 0


async def _create(args: argparse.Namespace) -> int:
    async with ChatApiClient(args.base_url, args.user, token=args.token) as client:
        try:
            conversation = await client.create_conversation(
                args.conversation,
                participant_ids=args.participants,
                name=args.name,
                conversation_type=2 if args.group else 1
            )
        except ApiError as e:
            print(_describe(e), file=sys.stderr)
            return 1

    members = ", ".join(p.id for p in conversation.participants or [])
    print(f"Created {conversation.id} with {members}")
    return 0


async def _list(args: argparse.Namespace) -> int:
    async with ChatApiClient(args.base_url, args.user, token=args.token) as client:
        try:
            page = await client.list_conversations(limit=args.limit)
        except ApiError as e:
            print(_describe(e), file=sys.stderr)
            return 1

    for conversation in page.conversations:
        other = conversation.other_participant
        title = conversation.name or (other.display_name or other.id if other else conversation.id)
        last = format_time(conversation.last_message_at) if conversation.last_message_at else "-"
        print(f"{conversation.id:<24} {title:<24} {last}")
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    return asyncio.run(_chat(args))


def cmd_create(args: argparse.Namespace) -> int:
    return asyncio.run(_create(args))


def cmd_list(args: argparse.Namespace) -> int:
    return asyncio.run(_list(args))


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="chatvault terminal client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--base-url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--token", default=None, help="Bearer token, if the API expects one")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # chat
    p = subparsers.add_parser("chat", help="Open a conversation")
    p.add_argument("user", help="Your user id")
    p.add_argument("conversation", help="Conversation id")
    p.add_argument("--interval", type=float, default=5.0, help="Poll interval in seconds")
    p.set_defaults(func=cmd_chat)

    # create
    p = subparsers.add_parser("create", help="Create a conversation")
    p.add_argument("user", help="Your user id")
    p.add_argument("conversation", help="Conversation id")
    p.add_argument("--with", dest="participants", action="append", default=[],
                   help="Participant user id (repeatable)")
    p.add_argument("--name", default=None, help="Conversation name")
    p.add_argument("--group", action="store_true", help="Create a group conversation")
    p.set_defaults(func=cmd_create)

    # list
    p = subparsers.add_parser("list", help="List your conversations")
    p.add_argument("user", help="Your user id")
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(func=cmd_list)

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if hasattr(args, "func"):
        return args.func(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
