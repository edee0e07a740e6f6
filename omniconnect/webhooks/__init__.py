"""Inbound webhook processing per provider."""
