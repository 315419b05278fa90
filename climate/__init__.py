__title__ = 'climate'
__author__ = 'Eiko Reishin (影皇嶺臣)'
__license__ = 'MIT'
# Placeholder, modified by dynamic-versioning.
__version__ = "0.0.0"

import logging

from .context import *
from .faults import *
from .flags import *
from .metadata import *
from .plans import *
from .reflection import *
from .runner import *

logging.getLogger(__name__).addHandler(logging.NullHandler())

VersionInfo = __import__("collections").namedtuple("VersionInfo", (
    "major",
    "minor",
    "micro",
    "releaselevel",
    "serial",
    "metadata"
))

# Placeholder, modified by dynamic-versioning.
version_info = VersionInfo(0, 0, 0, "final", 0, "")

__all__ = (
    "__title__",
    "__author__",
    "__license__",
    "__version__",
    "version_info"
)

# Load the exposed API of the execution context
__all__ += context.__all__  # type: ignore[attr-defined]
# Load the exposed API of the faults
__all__ += faults.__all__  # type: ignore[attr-defined]
# Load the exposed API of the flag descriptors
__all__ += flags.__all__  # type: ignore[attr-defined]
# Load the exposed API of the metadata store
__all__ += metadata.__all__  # type: ignore[attr-defined]
# Load the exposed API of the plans
__all__ += plans.__all__  # type: ignore[attr-defined]
# Load the exposed API of the reflection descriptors
__all__ += reflection.__all__  # type: ignore[attr-defined]
# Load the exposed API of the runner
__all__ += runner.__all__  # type: ignore[attr-defined]
