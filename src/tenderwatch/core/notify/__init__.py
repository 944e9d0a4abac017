"""Notifications for newly discovered tenders."""

from .digest import EmailNotifier, NotifyError, render_digest_html

__all__ = ["EmailNotifier", "NotifyError", "render_digest_html"]
