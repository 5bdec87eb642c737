"""Ports the client depends on."""

from .ports import MessageClient, MessageHandler, TopicChannel

__all__ = ["MessageClient", "MessageHandler", "TopicChannel"]
