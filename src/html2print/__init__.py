"""Convert HTML report markup into a paginated print content model."""

from .core import ExtractionConfig, HeadingRegistry, assemble, build_document, extract_content, parse_html
from .errors import EmptyResultError, Html2PrintError, ImageResolutionError, RenderingError, RootNotFoundError
from .version import __version__
