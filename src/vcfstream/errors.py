"""Exception hierarchy for vcfstream."""


class VCFError(Exception):
    """Base class for all vcfstream errors."""

    pass


class HeaderParseError(VCFError):
    """Raised when the VCF header is structurally malformed."""

    pass


class RecordParseError(VCFError):
    """Raised when a record line cannot be split into the fixed columns."""

    pass


class StreamNotOpenError(VCFError):
    """Raised when reading from a stream whose header failed to parse."""

    pass


class FieldAccessError(VCFError):
    """Base class for typed field access failures."""

    pass


class AmbiguousFieldAccessError(FieldAccessError):
    """Raised when a multi-valued field is read without an index."""

    pass


class FieldConversionError(FieldAccessError, ValueError):
    """Raised when a field value does not convert to the requested type."""

    pass


class FilterError(VCFError, ValueError):
    """Base class for filter expression errors."""

    pass


class FilterSyntaxError(FilterError):
    """Raised for unrecognized tokens and unbalanced parentheses."""

    pass


class UnboundVariableError(FilterError):
    """Raised when a filter references a name missing from the variable table."""

    pass


class FilterTypeError(FilterError):
    """Raised when an operator is applied to operands of the wrong type."""

    pass


class FilterEvaluationError(FilterError):
    """Raised when evaluation fails for a specific record, e.g. division by zero."""

    pass
