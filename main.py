"""
Finder cloud links — command-line entry point.

    python main.py login
    python main.py create ~/Documents "Quarterly report"
    python main.py open ~/Documents/Quarterly\\ report.goox
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from config.settings import Settings
from connectors.errors import LinkError
from linking.workspace import Workspace

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stderr,
    )
    for _noisy in ("httpcore", "httpx", "uvicorn.access", "aiosqlite"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="finder-links", description="Cloud-backed files for the local workspace.")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="connect a Google account")
    login.add_argument("--no-browser", action="store_true", help="print the URL instead of opening it")
    login.add_argument("--timeout", type=float, default=None, help="seconds to wait for the browser callback")

    sub.add_parser("logout", help="disconnect the Google account")
    sub.add_parser("status", help="show connection status")

    create = sub.add_parser("create", help="create a Google Doc and a local pointer to it")
    create.add_argument("directory")
    create.add_argument("name")

    open_ = sub.add_parser("open", help="open a file; pointer files open in the browser")
    open_.add_argument("path")

    mv = sub.add_parser("mv", help="rename or move a pointer file")
    mv.add_argument("old_path")
    mv.add_argument("new_path")

    rm = sub.add_parser("rm", help="delete a pointer file (the remote doc is kept)")
    rm.add_argument("path")

    sub.add_parser("list", help="list local pointer files")
    sub.add_parser("remote", help="list Docs, Sheets and Slides in Drive")

    share = sub.add_parser("share", help="mail a file as an attachment from the connected account")
    share.add_argument("path")
    share.add_argument("to")

    mail = sub.add_parser("mail", help="list recent Gmail messages")
    mail.add_argument("--limit", type=int, default=50)
    return parser


async def run(args: argparse.Namespace, settings: Settings) -> int:
    workspace = Workspace(settings)
    await workspace.open()
    try:
        if args.command == "login":
            await asyncio.to_thread(
                workspace.login_and_wait, open_browser=not args.no_browser, timeout=args.timeout
            )
            print(f"Connected as {workspace.connected_email()}")
        elif args.command == "logout":
            await workspace.disconnect()
            print("Disconnected")
        elif args.command == "status":
            if workspace.is_connected():
                print(f"Connected as {workspace.connected_email()}")
            else:
                print("Not connected")
        elif args.command == "create":
            pointer = await workspace.create_linked_document(args.directory, args.name)
            print(pointer)
        elif args.command == "open":
            print(await workspace.links.open_path(args.path))
        elif args.command == "mv":
            print(await workspace.links.rename_pointer(args.old_path, args.new_path))
        elif args.command == "rm":
            await workspace.links.delete_pointer(args.path)
        elif args.command == "list":
            for row in await workspace.links.list_linked_documents():
                print(f"{row.remote_id}\t{row.local_path}")
        elif args.command == "remote":
            for doc in await workspace.links.list_remote_documents():
                print(f"{doc.id}\t{doc.mime_type}\t{doc.name}")
        elif args.command == "share":
            message_id = await workspace.share_file(args.path, args.to)
            print(f"Sent to {args.to} ({message_id})")
        elif args.command == "mail":
            for message in await workspace.list_messages(args.limit):
                print(f"{message.date}\t{message.sender}\t{message.subject}")
    finally:
        await workspace.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(args.debug or settings.debug)
    try:
        return asyncio.run(run(args, settings))
    except (LinkError, OSError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
