from .runner import apply_pending, upgrade_to_head

__all__ = ["apply_pending", "upgrade_to_head"]
