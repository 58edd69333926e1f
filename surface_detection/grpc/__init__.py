"""
gRPC surface of the surface detection service.

- codec: Struct-based request/response encoding
- server: service implementation and server runner
- client: client and terminal CLI
"""

from .codec import SERVICE_NAME

__all__ = ["SERVICE_NAME"]
