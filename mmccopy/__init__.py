"""Copy raw images to and from memory cards."""

from .__version__ import __version__

__all__ = ["__version__"]
