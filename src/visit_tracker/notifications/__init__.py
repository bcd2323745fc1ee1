"""Notification outbox, dispatcher and transports."""
