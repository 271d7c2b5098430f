from internal.middlewares.auth import ASGIAuthMiddleware
from internal.middlewares.recorder import ASGIRecordMiddleware

__all__ = ["ASGIAuthMiddleware", "ASGIRecordMiddleware"]
