"""ssl-eol - print when a server's TLS certificate expires."""

__version__ = "1.0.0"

from .main import main

__all__ = ["main", "__version__"]
