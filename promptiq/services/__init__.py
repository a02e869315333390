from promptiq.services.thread_service import ThreadService
from promptiq.services.upstream_service import UpstreamService

__all__ = ["ThreadService", "UpstreamService"]
