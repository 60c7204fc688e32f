"""Notification service: turns rating events into provider notifications."""
