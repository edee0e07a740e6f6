"""Domain layer: models, collaborator interfaces and services."""
