"""A block-based file system over raw disk images, with a request-driven file server."""

__version__ = "0.1.0"
__all__ = ["args", "bitops", "check", "errors", "fs", "ide", "layout", "server"]