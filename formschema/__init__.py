"""Form schema extraction for live documents."""

from importlib import metadata

try:
    __version__ = metadata.version("formschema")
except metadata.PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__"]
