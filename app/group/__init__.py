from app.group.broadcast import BroadcastEngine

__all__ = ["BroadcastEngine"]
