from . import public, requests, system

__all__ = ["public", "requests", "system"]
