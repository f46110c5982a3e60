"""knotcap — traffic classification rules and capture export."""

__version__ = "0.1.0"
