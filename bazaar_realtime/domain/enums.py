"""Controlled enumerations for the bazaar-realtime domain.

Every categorical field MUST reference an enum defined here.
The string values are the ones the marketplace backend puts on the wire.
"""

from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    """The four kinds of marketplace account that hold a realtime session."""

    DELIVERY = "Delivery"
    CUSTOMER = "Customer"
    SELLER = "Seller"
    ADMIN = "Admin"


class ConnectionState(str, Enum):
    """Lifecycle of the shared realtime connection.

    NO_CONNECTION → CONNECTING → CONNECTED → DISCONNECTED → CONNECTING ...
    TERMINATED is terminal and reachable from every other state.
    """

    NO_CONNECTION = "no_connection"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    TERMINATED = "terminated"


class DisconnectReason(str, Enum):
    """Why a live connection went away."""

    CLIENT = "io client disconnect"
    SERVER = "io server disconnect"
    TRANSPORT_CLOSE = "transport close"
    TRANSPORT_ERROR = "transport error"


class TeardownMode(str, Enum):
    """Which rule decides that the last consumer has gone."""

    LATEST = "latest"
    REFCOUNT = "refcount"
