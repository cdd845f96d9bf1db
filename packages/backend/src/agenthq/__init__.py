"""AgentHQ — real-time layer for human + AI agent collaboration.

Server side: channel subscription registry, WebSocket fan-out, optional
Redis relay between processes. Client side: a reconnecting connection
manager with typed event listeners.
"""

__version__ = "0.1.0"
