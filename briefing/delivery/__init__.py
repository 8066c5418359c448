"""Digest delivery: Resend email API and a log-only dry run."""

from briefing.delivery.base import Delivery, LogDelivery
from briefing.delivery.resend import ResendDelivery

__all__ = ["Delivery", "LogDelivery", "ResendDelivery"]
