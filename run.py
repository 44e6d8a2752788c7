#!/usr/bin/env python3
import asyncio

from coinpulsebot.main import main

if __name__ == "__main__":
    asyncio.run(main())
