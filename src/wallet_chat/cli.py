"""Command-line entry point for wallet chat sync."""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
from pathlib import Path

from wallet_chat.client import ChatClient
from wallet_chat.codec import format_file_size
from wallet_chat.contacts import ContactBook
from wallet_chat.core import AppSettings, configure_logging, load_app_settings
from wallet_chat.core.errors import ChatSyncError
from wallet_chat.core.identity import is_valid_identity
from wallet_chat.core.models import Conversation, DeliveryState, Message
from wallet_chat.transport import HttpContactDirectory

_STATE_MARKERS = {
    DeliveryState.PENDING: "...",
    DeliveryState.DELIVERED: "ok",
    DeliveryState.READ: "read",
    DeliveryState.FAILED: "FAILED",
}


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Wallet-to-wallet chat client")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "--wallet",
        default=None,
        help="Local wallet address (defaults to WALLET_CHAT_IDENTITY__WALLET_ADDRESS).",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "conversations", "history", "send", "listen"],
        help="Operation to execute.",
    )
    parser.add_argument("--peer", default=None, help="Counterpart wallet address.")
    parser.add_argument(
        "--search",
        default="",
        help="Filter conversations by address, short address or contact name.",
    )
    parser.add_argument("--body", default="", help="Message text for the send command.")
    parser.add_argument(
        "--attach",
        type=Path,
        default=None,
        help="File to attach when sending.",
    )
    parser.add_argument(
        "--seconds",
        type=float,
        default=30.0,
        help="How long to wait for activation or, for listen, for events (default: 30).",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit status."""
    command = args.command
    if command == "info":
        print("Wallet chat is ready. Configure the API and realtime endpoints to start.")
        print(f"API base URL: {settings.api.base_url}")
        print(f"Realtime URL: {settings.realtime.url}")
        print(
            "Attachment limit: "
            f"{format_file_size(settings.attachments.max_size_bytes)}"
        )
        return 0

    wallet = args.wallet or settings.identity.wallet_address
    if not wallet:
        print("No wallet address configured; pass --wallet.")
        return 2
    if command in {"history", "send"} and not args.peer:
        print(f"The {command} command requires --peer.")
        return 2
    if args.peer and not is_valid_identity(args.peer):
        print(f"Invalid wallet address: {args.peer}")
        return 2

    try:
        return asyncio.run(_run(command, args, settings, wallet))
    except ChatSyncError as exc:
        print(f"{command} failed: {exc}")
        return 1


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


async def _run(
    command: str, args: argparse.Namespace, settings: AppSettings, wallet: str
) -> int:
    client = ChatClient.from_settings(settings)
    contacts = ContactBook(HttpContactDirectory(settings.api), wallet)
    needs_session = command in {"send", "listen"}
    try:
        await client.activate(wallet, wait=args.seconds if needs_session else None)
        if command != "send":
            await asyncio.to_thread(contacts.refresh)

        if command == "conversations":
            _print_conversations(
                client.conversations(args.search, contacts.display_name), contacts
            )
        elif command == "history":
            _print_messages(client.messages(args.peer), contacts)
        elif command == "send":
            message = await _send(client, args)
            print(f"Queued message {message.id} ({message.delivery_state.value}).")
            await asyncio.sleep(min(args.seconds, 5.0))
            current = client.messages(args.peer)[-1:]
            if current:
                print(f"Delivery state: {current[0].delivery_state.value}")
        elif command == "listen":
            seen = len(client.store)
            print(f"Listening for {args.seconds:.0f}s as {wallet}...")
            await asyncio.sleep(args.seconds)
            fresh = client.store.messages()[seen:]
            _print_messages(list(fresh), contacts)
    finally:
        await client.close()
    return 0


async def _send(client: ChatClient, args: argparse.Namespace) -> Message:
    if args.attach is None:
        return await client.send(args.peer, args.body)
    media_type, _ = mimetypes.guess_type(args.attach.name)
    return await client.send_file(
        args.peer,
        args.attach,
        media_type or "application/octet-stream",
        body=args.body,
    )


def _print_conversations(
    conversations: list[Conversation], contacts: ContactBook
) -> None:
    if not conversations:
        print("No conversations found.")
        return
    header = f"{'Peer':<24}  {'Unread':>6}  Last message"
    print(header)
    print("-" * len(header))
    for conversation in conversations:
        last = conversation.last_message
        preview = "-" if last is None else _preview(last)
        name = contacts.display_name(conversation.peer)
        print(f"{name:<24}  {conversation.unread_count:>6}  {preview}")


def _print_messages(messages: list[Message], contacts: ContactBook) -> None:
    if not messages:
        print("No messages found.")
        return
    for message in messages:
        stamp = message.sent_at.isoformat(timespec="minutes")
        sender = contacts.display_name(message.sender)
        marker = _STATE_MARKERS[message.delivery_state]
        print(f"{stamp}  {sender:<16}  [{marker}]  {_preview(message)}")


def _preview(message: Message) -> str:
    text = message.body.replace("\n", " ")
    if len(text) > 60:
        text = f"{text[:57]}..."
    if message.attachment is not None:
        size = format_file_size(message.attachment.size_bytes)
        text = f"{text} [{message.attachment.name}, {size}]".strip()
    return text


if __name__ == "__main__":
    main()
