#!/usr/bin/env python3
"""
MiLight Bridge - home-automation lights on a MiLight hub

Polls the hub for its lights, turns per-attribute controller changes into
coalesced hub commands and keeps light state in sync over HTTP or MQTT.
"""

import asyncio

from milight_bridge.main import main

if __name__ == "__main__":
    asyncio.run(main())
