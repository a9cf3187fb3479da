"""Notification queue and email templates."""
