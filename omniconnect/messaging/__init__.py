"""Messaging provider integrations."""
