"""Messaging channel: transport abstraction, Telegram adapter and inbound handling."""
