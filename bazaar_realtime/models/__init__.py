from bazaar_realtime.models.frames import AuthFrame, ConnectedFrame, ConnectErrorFrame, EventFrame
from bazaar_realtime.models.options import ConnectionOptions

__all__ = ["AuthFrame", "ConnectedFrame", "ConnectErrorFrame", "EventFrame", "ConnectionOptions"]
