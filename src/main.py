"""CLI entry point for the booking assistant.

A terminal chat loop for testing and development.  For production, use
the FastAPI server (``booking-assistant-server``).

Usage:
    booking-assistant                     # normal mode (quiet)
    booking-assistant --debug             # debug mode (shows API calls)
    booking-assistant --sync-assistant    # push instructions + tools, then exit

``python -m src.main`` takes the same flags.
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from src.agent import create_booking_agent
from src.api.extraction import extract_user_details
from src.prompts import ASSISTANT_INSTRUCTIONS

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("googleapiclient").setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Booking assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--sync-assistant", action="store_true",
        help="Update the hosted assistant's instructions and tool definitions, then exit",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    agent = create_booking_agent()

    if args.sync_assistant:
        result = agent.sync_assistant(ASSISTANT_INSTRUCTIONS)
        tools = [t["function"]["name"] for t in result.get("tools", []) if t.get("type") == "function"]
        print(f"Assistant {result.get('name') or result.get('id')} updated: {', '.join(tools)}")
        return

    info = agent.assistant_info()
    print("\n" + "=" * 60)
    print(f"  Booking Assistant - {info.get('name') or 'CLI Chat'} ({info.get('model', '?')})")
    print("=" * 60)
    print("  Include your details, e.g.:")
    print("  Name Jane Doe, email jane@example.com, date 24/05/2024, time 10:00 AM")
    print("  Type 'quit' to exit.")
    print("=" * 60 + "\n")

    while True:
        try:
            question = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not question:
            continue

        if question.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        details = extract_user_details(question)
        try:
            reply = agent.run(question, details)
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break

        print(f"\nAssistant: {reply}\n")


if __name__ == "__main__":
    main()
