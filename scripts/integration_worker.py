from __future__ import annotations

import argparse
import asyncio

from tenantrelay.core.logging import configure_logging
from tenantrelay.workers.integration_worker import run_integration_worker, run_reconcile_once


async def _main(once: bool) -> None:
    # Boot a dedicated reconciler process so status checks never run on request paths.
    configure_logging()
    if once:
        await run_reconcile_once()
        return
    await run_integration_worker()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Re-verify pending tenant integrations.")
    parser.add_argument("--once", action="store_true", help="Run a single reconciliation pass and exit.")
    args = parser.parse_args()
    asyncio.run(_main(args.once))
