from __future__ import annotations

import argparse
import dataclasses

from dotenv import load_dotenv

from postmeet.config import RecallConfig
from postmeet.notetaker.failure_codes import BotStatus
from postmeet.notetaker.recall_client import RecallClient


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Check the latest Recall.ai bot status.")
    p.add_argument("--bot-id", required=True, help="Recall.ai bot id")
    p.add_argument("--recall-api-key", default=None, help="Recall.ai API key (or set RECALL_API_KEY env var)")
    p.add_argument(
        "--recall-api-url",
        default=None,
        help="Recall.ai API base URL (default: RECALL_API_URL or https://us-east-1.recall.ai/api/v1)",
    )
    p.add_argument(
        "--show-changes",
        type=int,
        default=0,
        help="If >0, print the N most recent status changes (default: 0)",
    )
    return p


def main() -> int:
    load_dotenv()
    args = build_parser().parse_args()

    cfg = RecallConfig.from_env()
    overrides = {}
    if args.recall_api_key:
        overrides["api_key"] = args.recall_api_key
    if args.recall_api_url:
        overrides["api_base"] = args.recall_api_url.rstrip("/")
    if overrides:
        cfg = dataclasses.replace(cfg, **overrides)

    client = RecallClient(cfg)
    bot = client.get_bot(args.bot_id)

    if args.show_changes and args.show_changes > 0:
        changes = bot.raw.get("status_changes")
        if isinstance(changes, list) and changes:
            print("Most recent status changes:")
            for ch in list(reversed(changes))[: args.show_changes]:
                if not isinstance(ch, dict):
                    continue
                print(f"- created_at={ch.get('created_at')} code={ch.get('code')} sub_code={ch.get('sub_code')}")
            print("")

    print(f"bot_id:     {bot.bot_id}")
    print(f"status:     {bot.status.value}")
    print(f"raw_status: {bot.raw_status}")
    print(f"video_url:  {bot.video_url or '(not available)'}")

    # Helpful interpretation
    if bot.status == BotStatus.IN_WAITING_ROOM:
        print("\nMeaning: the bot is waiting to be admitted in the lobby.")
    elif bot.status in {BotStatus.IN_CALL_RECORDING, BotStatus.IN_CALL_NOT_RECORDING}:
        print("\nMeaning: the bot is in the meeting.")
    elif bot.status in {BotStatus.DONE, BotStatus.CALL_ENDED}:
        print("\nMeaning: the meeting is over; the poller will fetch the transcript.")
    elif bot.status == BotStatus.FAILED:
        print("\nMeaning: the bot failed and will not produce a transcript.")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
