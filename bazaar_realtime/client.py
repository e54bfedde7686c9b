"""Client-side wiring: build the one SocketManager a process should own.

Call create_socket_manager() once at application startup and pass the
result to every consumer that needs live events.
"""

from __future__ import annotations

from bazaar_realtime.config import Settings, settings as default_settings
from bazaar_realtime.services.socket_manager import SocketManager, connection_factory
from bazaar_realtime.services.teardown import policy_for


def create_socket_manager(config: Settings | None = None, **connection_kwargs) -> SocketManager:
    """Build a SocketManager from settings.

    Extra keyword arguments (e.g. ``connector``) are forwarded to every
    RealtimeConnection the manager creates.
    """
    config = config or default_settings
    return SocketManager(
        factory=connection_factory(config.socket_base_url, **connection_kwargs),
        options=config.connection_options(),
        teardown_delay=config.teardown_delay_seconds,
        policy=policy_for(config.teardown_policy),
        verify_identity=config.verify_identity_on_reuse,
    )
