"""
Async client for ArcGIS feature service layers, speaking GeoJSON.
"""

import importlib.metadata
from pathlib import Path


__version__: str = importlib.metadata.version("aio-featureservice")

# we add this to all modules for pdoc;
# see https://pdoc.dev/docs/pdoc.html#use-numpydoc-or-google-docstrings
__docformat__ = "google"

# we also use __all__ in all modules for pdoc; this lets us control the order
__all__ = (
    "__version__",
    "FeatureService",
    "ServiceConfig",
    "ClientError",
    "client",
    "error",
    "esri",
    "settings",
    "spatial",
)

from .client import FeatureService
from .error import ClientError
from .settings import ServiceConfig


# extend the module's docstring
__doc__ += "\n<br>\n"
__doc__ += (Path(__file__).parent / "doc" / "usage.md").read_text(encoding="utf-8")
