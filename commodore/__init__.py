__path__ = __import__("pkgutil").extend_path(__path__, __name__)  # NOQA: F-821
__title__ = 'commodore'
__author__ = 'Eiko Reishin (影皇嶺臣)'
__license__ = 'MIT'
# Placeholder, modified by dynamic-versioning.
__version__ = "0.0.0"

from .arguments import *
from .coercion import *
from .commands import *
from .faults import *
from .help import *
from .syntax import *
from .tokens import *
from .values import *

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

# Library logging stays silent unless the host application configures it.
__import__("logging").getLogger(__name__).addHandler(__import__("logging").NullHandler())

__all__ = (
    "__path__",
    "__title__",
    "__author__",
    "__license__",
    "__version__",
    "version_info"
)

# Load the exposed API of the descriptors
__all__ += arguments.__all__  # type: ignore[attr-defined]
# Load the exposed API of the value coercion
__all__ += coercion.__all__  # type: ignore[attr-defined]
# Load the exposed API of the commands
__all__ += commands.__all__  # type: ignore[attr-defined]
# Load the exposed API of the faults
__all__ += faults.__all__  # type: ignore[attr-defined]
# Load the exposed API of the help formatter
__all__ += help.__all__  # type: ignore[attr-defined]
# Load the exposed API of the flag syntax
__all__ += syntax.__all__  # type: ignore[attr-defined]
# Load the exposed API of the tokenizer
__all__ += tokens.__all__  # type: ignore[attr-defined]
# Load the exposed API of the value store
__all__ += values.__all__  # type: ignore[attr-defined]
