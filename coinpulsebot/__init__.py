"""Cryptocurrency rate tracker with a Telegram bot and a plain-text HTTP API."""
