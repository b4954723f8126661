"""
Entrypoint that boots the Kotatsu forum bot via the Discord adapter.
"""

import asyncio

from dotenv import load_dotenv

load_dotenv()

from discord_adapter import main  # noqa: E402


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        # Container stops and Ctrl-C surface as KeyboardInterrupt.
        print("[SHUTDOWN] Received interrupt; exiting cleanly.", flush=True)
