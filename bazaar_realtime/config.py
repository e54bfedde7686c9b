"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from bazaar_realtime.domain.enums import TeardownMode
from bazaar_realtime.models.options import ConnectionOptions


class Settings(BaseSettings):
    app_name: str = "bazaar-realtime"
    debug: bool = False
    log_level: str = "INFO"

    # Client: where the shared connection points
    socket_base_url: str = "ws://localhost:5000/ws/realtime"

    # Client: reconnection policy (milliseconds)
    reconnection: bool = True
    reconnection_attempts: int = 5
    reconnection_delay_ms: int = 2000
    reconnection_delay_max_ms: int = 10000
    randomization_factor: float = 0.5
    connect_timeout_ms: int = 20000

    # Client: lifecycle controller
    teardown_delay_seconds: float = 0.1
    teardown_policy: TeardownMode = TeardownMode.LATEST
    verify_identity_on_reuse: bool = True

    # Server: hub
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    handshake_timeout_seconds: float = 10.0

    model_config = {"env_prefix": "BAZAAR_"}

    def connection_options(self) -> ConnectionOptions:
        return ConnectionOptions(
            reconnection=self.reconnection,
            reconnection_attempts=self.reconnection_attempts,
            reconnection_delay=self.reconnection_delay_ms,
            reconnection_delay_max=self.reconnection_delay_max_ms,
            randomization_factor=self.randomization_factor,
            timeout=self.connect_timeout_ms,
        )


settings = Settings()
