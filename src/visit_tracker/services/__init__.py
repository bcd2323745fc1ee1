"""Tracking services: session lifecycle, check-in scheduler, panic workflow and sharing."""
