"""Live check: share one connection between two consumers against a running hub.

Start the hub first (``uvicorn bazaar_realtime.main:app --port 5000``), then
push an event while this runs, e.g.

    curl -X POST localhost:5000/notify -H 'content-type: application/json' \
         -d '{"role": "Delivery", "userId": "rider-42", "event": "order:new", "data": {"orderId": "A1"}}'
"""

import asyncio

from bazaar_realtime.client import create_socket_manager
from bazaar_realtime.config import settings
from bazaar_realtime.domain.credentials import Credentials
from bazaar_realtime.domain.enums import UserRole
from bazaar_realtime.server.auth import TokenVerifier
from bazaar_realtime.services.socket_manager import SocketCallbacks


USER_ID = "rider-42"


def _callbacks(name: str) -> SocketCallbacks:
    return SocketCallbacks(
        on_connect=lambda: print(f"[{name}] connected"),
        on_disconnect=lambda reason: print(f"[{name}] disconnected: {reason}"),
        on_error=lambda error: print(f"[{name}] error: {error}"),
    )


async def main():
    token = TokenVerifier(settings.jwt_secret, settings.jwt_algorithm).issue(USER_ID, UserRole.DELIVERY)
    credentials = Credentials(token=token, user_id=USER_ID, role=UserRole.DELIVERY)
    manager = create_socket_manager()

    async with manager.mounted(credentials, _callbacks("orders")) as connection:
        connection.on("order:new", lambda data: print(f"[orders] new order: {data}"))
        await asyncio.sleep(2)

        # Second consumer mounts while the first is live: same socket.
        async with manager.mounted(credentials, _callbacks("wallet")) as same:
            print(f"Reused: {same is connection}, sockets created: {manager.connections_created}")
            connection.on("pong", lambda data: print(f"[wallet] pong: {data}"))
            await connection.emit("ping", {"from": "live_check"})
            print("Listening for 30s, push something to /notify ...")
            await asyncio.sleep(30)

    await asyncio.sleep(settings.teardown_delay_seconds + 0.1)
    print(f"State after unmounting both: {manager.state.value}")


if __name__ == "__main__":
    asyncio.run(main())
