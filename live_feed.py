"""Live feed: walk a simulated collar out of a fence and watch the dashboard.

Start the server with the example fences first:

    SAFEZONE_FENCES_FILE=fences.example.json uvicorn safezone_core.main:app
"""

import asyncio
import json
import os
from datetime import datetime, timezone

import httpx
import websockets


HOST = os.environ.get("SAFEZONE_HOST", "127.0.0.1:8000")
POSITION_URI = f"ws://{HOST}/ws/position"
DASHBOARD_URI = f"ws://{HOST}/ws/dashboard"
API = f"http://{HOST}/api"

FARM_ID = "farm-demo"
DEVICE_ID = "collar-0001"

# Fence in fences.example.json spans longitude 144.9600 to 144.9620
WALK = [
    ("inside", -37.8110, 144.9610, 3),
    ("warning (~30 m east)", -37.8110, 144.96234, 30),
    ("danger (~200 m east)", -37.8110, 144.96430, 3),
    ("back inside", -37.8110, 144.9610, 3),
]


async def dashboard_listener(ready_event: asyncio.Event):
    """Connect to /ws/dashboard and print what the engine pushes."""
    async with websockets.connect(DASHBOARD_URI) as ws:
        print("[DASHBOARD] Connected\n")
        ready_event.set()

        while True:
            data = json.loads(await ws.recv())
            if data.get("type") == "alarm":
                alarm = data["alarm"]
                print("=" * 70)
                print(f"[DASHBOARD] ALARM level={alarm['level']} kind={alarm['kind']} at {alarm['triggered_at']}")
                print("=" * 70)
            elif data.get("type") == "entity_update":
                entity = data["entity"]
                print(
                    f"[DASHBOARD] {entity['entity_id']}: zone={entity['zone']} "
                    f"breaches={entity['breach_count']} "
                    f"unsafe={entity['actual_unsafe_seconds']}s"
                )


async def walk_collar():
    """Send one gps_data frame per second along WALK."""
    async with websockets.connect(POSITION_URI) as ws:
        for label, lat, lng, seconds in WALK:
            print(f"\n[COLLAR] {label} for {seconds}s")
            for _ in range(seconds):
                frame = {
                    "type": "gps_data",
                    "deviceId": DEVICE_ID,
                    "latitude": lat,
                    "longitude": lng,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
                await ws.send(json.dumps(frame))
                ack = json.loads(await ws.recv())
                if ack["status"] != "accepted":
                    print(f"[COLLAR] rejected: {ack}")
                await asyncio.sleep(1)


async def main():
    async with httpx.AsyncClient() as client:
        resp = await client.put(f"{API}/entities/{DEVICE_ID}/assign", json={"farm_id": FARM_ID})
        resp.raise_for_status()
        print(f"Assigned {DEVICE_ID} to {FARM_ID}")

    ready = asyncio.Event()
    listener_task = asyncio.create_task(dashboard_listener(ready))
    await ready.wait()

    await walk_collar()
    await asyncio.sleep(2)

    async with httpx.AsyncClient() as client:
        state = (await client.get(f"{API}/alarms/{DEVICE_ID}")).json()
        print(f"\nFinal alarm state: {json.dumps(state, indent=2)}")

    listener_task.cancel()
    print("\nDone!")


if __name__ == "__main__":
    asyncio.run(main())
