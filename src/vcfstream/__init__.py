"""vcfstream: streaming VCF parser with typed field access and record filters."""

__version__ = "0.1.0"

from .errors import (  # noqa: E402
    FieldAccessError,
    FilterError,
    HeaderParseError,
    RecordParseError,
    VCFError,
)
from .filters import FilterType, VariantFilter, filter_variables  # noqa: E402
from .header import FieldType, VCFHeader, VCFHeaderParser  # noqa: E402
from .models import Variant  # noqa: E402
from .reader import Region, VariantCallFile  # noqa: E402

__all__ = [
    "FieldAccessError",
    "FieldType",
    "FilterError",
    "FilterType",
    "HeaderParseError",
    "RecordParseError",
    "Region",
    "VCFError",
    "VCFHeader",
    "VCFHeaderParser",
    "Variant",
    "VariantCallFile",
    "VariantFilter",
    "filter_variables",
    "__version__",
]
