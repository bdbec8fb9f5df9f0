"""Chatbridge - one chat client for many AI providers."""

__version__ = "0.3.1"
