"""Week block store: tiered block lookup, location index and index validation."""

__version__ = "1.0.0"
