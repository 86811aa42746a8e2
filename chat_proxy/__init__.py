"""Streaming chat-completion proxy service."""
