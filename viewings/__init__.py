"""Property-viewing appointment coordination over WhatsApp."""

__version__ = "0.1.0"
