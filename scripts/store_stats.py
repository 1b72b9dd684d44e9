#!/usr/bin/env python3
"""
Print conversation store statistics and configuration.

Runs cross-partition counts, so use it for diagnostics only.

Usage:
    python scripts/store_stats.py [--json]
"""

import argparse
import asyncio
import json
import os
import sys

# Add project root to path
script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(script_dir)
sys.path.insert(0, project_root)

from src.conversation_store.config import settings
from src.conversation_store.logging import configure_structured_logging
from src.conversation_store.store import ConversationStore


def _show(value) -> str:
    return "ERROR" if value is None else str(value)


async def report(as_json: bool) -> None:
    async with ConversationStore.from_settings(settings) as store:
        stats = await store.stats()
        info = store.describe()

    if as_json:
        print(json.dumps({"config": info, "stats": stats.model_dump(mode="json")}, indent=2))
        return

    print("Configuration")
    for key, value in info.items():
        print(f"  {key}: {value}")

    print("\nStatistics")
    print(f"  backend: {stats.backend}")
    print(f"  total documents: {_show(stats.total_documents)}")
    print(f"  sessions: {_show(stats.sessions)}")
    print(f"  conversations: {_show(stats.conversations)} ({_show(stats.active_conversations)} active)")
    print(f"  windows: {_show(stats.windows)} (avg {_show(stats.avg_window_entries)} entries)")
    print(f"  messages: {stats.total_messages}")
    print(f"    user: {_show(stats.user_messages)}")
    print(f"    assistant: {_show(stats.assistant_messages)}")
    print(f"    system: {_show(stats.system_messages)}")
    print(f"  most recent message: {stats.recent_activity.isoformat() if stats.recent_activity else '-'}")


def main():
    parser = argparse.ArgumentParser(description="Show conversation store statistics")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    args = parser.parse_args()

    configure_structured_logging("WARNING")
    asyncio.run(report(args.json))


if __name__ == "__main__":
    main()
