"""Real-time infrastructure — subscriptions, WebSocket hub, Redis relay.

Learn: Events flow in three hops:
1. REST handlers → EventBus.publish (optionally through Redis PUBLISH)
2. EventBus → ConnectionHub.deliver in every API process
3. ConnectionHub → sockets subscribed to the channel (SubscriptionRegistry)

Producers never see sockets, and the registry never sees producers.
"""
