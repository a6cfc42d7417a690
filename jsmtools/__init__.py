"""JetStream stream configuration, query options, subject matching and NATS connection contexts."""

__version__ = "0.1.0"