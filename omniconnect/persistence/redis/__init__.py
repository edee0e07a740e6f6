from .presence_repository import RedisPresenceRepository

__all__ = ["RedisPresenceRepository"]
