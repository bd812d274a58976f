"""mhtbuilder: save web pages as single HTML files, plain text, offline copies or MHT archives."""

from .workflows import *  # noqa: F401,F403 re-export the public workflow API
from .workflows import __all__ as _workflow_all
from .workflows.builder_config import GENERATOR_VERSION as __version__

__all__ = ["__version__", *_workflow_all]
