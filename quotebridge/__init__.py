"""QuoteBridge: quote request/reply correlated over a publish/subscribe bus."""

__version__ = "0.1.0"
