"""colaplug: validation, packaging and publication of command launcher plugins."""

from colaplug.__version__ import __version__

__all__ = ["__version__"]
