"""Hair density scan engine.

Scores seven anatomically anchored face regions of a still photograph for
the edge/darkness texture of fine hair. The engine consumes a detected face
(`types.FaceObservation`) and an RGB image; `scan.analyze` is the entry point.
"""

from . import config as config
from . import errors as errors
from . import geometry as geometry
from . import locator as locator
from . import quality as quality
from . import scan as scan
from . import scorer as scorer
from . import template as template
from . import types as types
from .scan import analyze

__all__ = [
    "config",
    "errors",
    "geometry",
    "locator",
    "quality",
    "scan",
    "scorer",
    "template",
    "types",
    "analyze",
]
