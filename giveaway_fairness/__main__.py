"""Entry point for running the draw scheduler via python -m giveaway_fairness"""

import asyncio

from giveaway_fairness.scheduler import main

if __name__ == "__main__":
    asyncio.run(main())
