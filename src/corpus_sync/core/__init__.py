"""Version-control transport layer."""

from .transport import GitTransport, Transport, new_session_dir, sparse_checkout

__all__ = ["GitTransport", "Transport", "new_session_dir", "sparse_checkout"]
