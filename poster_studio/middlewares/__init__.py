from __future__ import annotations

from poster_studio.middlewares.body_guard import BodyGuardMiddleware

__all__ = ["BodyGuardMiddleware"]
