#!/usr/bin/env python3
"""
Provision the Cosmos DB database and container for the conversation store.

Creates (if missing):
- Database COSMOS_DB_DATABASE_NAME with COSMOS_DB_THROUGHPUT RU/s
- Container COSMOS_DB_CONTAINER_NAME partitioned by /tenant_id
- Default TTL (DOCUMENT_TTL_SECONDS) and composite indexes for history/listing

Usage:
    export COSMOS_DB_ENDPOINT=https://<account>.documents.azure.com:443/
    export COSMOS_DB_KEY=<key>   # omit to use DefaultAzureCredential
    python scripts/setup_cosmos.py [--probe-only]
"""

import argparse
import asyncio
import os
import sys

# Add project root to path
script_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(script_dir)
sys.path.insert(0, project_root)

from src.conversation_store.config import settings
from src.conversation_store.errors import BackendError
from src.conversation_store.logging import configure_structured_logging
from src.conversation_store.services.cosmos_backend import CosmosBackend


async def setup(probe_only: bool) -> int:
    backend = CosmosBackend(settings)
    try:
        if not probe_only:
            print(f"Provisioning {settings.COSMOS_DB_DATABASE_NAME}/{settings.COSMOS_DB_CONTAINER_NAME}...")
            await backend.ensure_container()
            print(f"  - Partition key: {settings.COSMOS_DB_PARTITION_KEY_PATH}")
            print(f"  - Default TTL: {settings.DOCUMENT_TTL_SECONDS}s")
            print("  - Composite indexes: (conversation_id, created_at), (tenant_id, last_activity_at)")

        print("\nProbing container...")
        await backend.probe()
        print("✅ Cosmos DB container is reachable")
        return 0
    except BackendError as e:
        print(f"❌ {type(e).__name__}: {e.message}")
        return 1
    finally:
        await backend.close()


def main():
    parser = argparse.ArgumentParser(description="Provision Cosmos DB for the conversation store")
    parser.add_argument("--probe-only", action="store_true", help="Only check connectivity, create nothing")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    if not settings.cosmos_configured:
        print("❌ Error: COSMOS_DB_ENDPOINT must be set")
        print("\nUsage:")
        print("  export COSMOS_DB_ENDPOINT=https://<account>.documents.azure.com:443/")
        print("  python scripts/setup_cosmos.py")
        sys.exit(1)

    configure_structured_logging(args.log_level)
    sys.exit(asyncio.run(setup(args.probe_only)))


if __name__ == "__main__":
    main()
