"""Record TCP, TLS and UDP sessions as JSON lines, with time-based file rotation."""

__version__ = "0.4.0"
__all__ = ["__version__"]