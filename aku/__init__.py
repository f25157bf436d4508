"""aku — spawn and supervise independent coding agents as OS processes."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("aku")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
