"""Persistence backends for the collaborator interfaces."""
