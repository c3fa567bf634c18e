import asyncio
import json
import sys

import websockets


async def main(token: str, opportunity_id: str) -> None:
    uri = f"ws://127.0.0.1:4001/ws/opportunities/{opportunity_id}/chat"
    async with websockets.connect(uri) as websocket:
        await websocket.send(json.dumps({"token": token, "visible": False}))
        print(f"Connected to the chat of opportunity {opportunity_id}, waiting for events...")
        while True:
            try:
                payload = await asyncio.wait_for(websocket.recv(), timeout=60)
            except asyncio.TimeoutError:
                print("No events for 60s")
                return
            except websockets.ConnectionClosed as exc:
                print(f"Connection closed: {exc}")
                return
            print(f"Received: {payload}")


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("usage: python scripts/chat_listener.py <token> <opportunity-id>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2]))
