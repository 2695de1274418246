"""Operating-system kernel simulator with a UDP file-system server."""

__version__ = "0.1.0"
__all__ = ["protocol", "server", "scheduler", "kernel"]