"""TradeSphere pricing core: two-tier contracting-service pricing with live configuration."""

__version__ = "2.0.0"
