"""
Family Assistant — Entry Point.

Usage:
    python main.py                      start the Telegram bot
    python main.py add-member FAMILY NAME --telegram-id ID [--role ROLE] [--language LANG]

Members are the only users the bot answers; register them before chatting.
"""

import argparse
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def cmd_add_member(args) -> None:
    """Register a family member and link their Telegram account."""
    from family_assistant.data.db import FamilyDB

    member = FamilyDB().add_member(
        family_id=args.family,
        display_name=args.name,
        role=args.role,
        telegram_user_id=args.telegram_id,
        language=args.language,
    )
    print(f"Added {member.display_name} ({member.role}) to family {member.family_id}: {member.id}")


def main(argv: list[str] | None = None) -> None:
    from family_assistant.data.models import ROLES

    parser = argparse.ArgumentParser(prog="family-assistant", description="Family Assistant bot")
    sub = parser.add_subparsers(dest="command")

    p_add = sub.add_parser("add-member", help="register a family member")
    p_add.add_argument("family", help="family id (any stable string)")
    p_add.add_argument("name", help="display name")
    p_add.add_argument("--telegram-id", type=int, required=True, help="numeric Telegram user id")
    p_add.add_argument("--role", choices=ROLES, default="member")
    p_add.add_argument("--language", choices=("it", "en"), default="it")

    args = parser.parse_args(argv)

    if args.command == "add-member":
        cmd_add_member(args)
        return

    from family_assistant.bot.telegram_bot import main as run_bot

    run_bot()


if __name__ == "__main__":
    main(sys.argv[1:])
