"""WhatsApp Business messaging bridge."""

__version__ = "0.1.0"
