"""Email service implementations, one per mail provider."""

from .base import EmailService
from .gmail import GmailService
from .outlook import OutlookService
from .yahoo import YahooService

__all__ = ["EmailService", "GmailService", "OutlookService", "YahooService"]
