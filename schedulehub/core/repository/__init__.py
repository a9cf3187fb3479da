from schedulehub.core.repository.base import BaseRepository

__all__ = ["BaseRepository"]
