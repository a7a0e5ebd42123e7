"""Message store service skeleton: config, retries, logging and MongoDB/Kafka/HTTP lifecycle."""

__version__ = "0.1.0"