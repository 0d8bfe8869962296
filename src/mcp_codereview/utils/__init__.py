"""Shared helpers: logging setup, environment parsing and URL checks."""
