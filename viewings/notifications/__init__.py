"""Outbound message delivery."""

from .base import LogNotifier, Notifier
from .twilio_whatsapp import TwilioWhatsAppNotifier

__all__ = ["LogNotifier", "Notifier", "TwilioWhatsAppNotifier"]
