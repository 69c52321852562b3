"""VCF header parsing: field type and cardinality tables."""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from math import comb

from .errors import HeaderParseError

logger = logging.getLogger(__name__)

FIXED_COLUMNS = ["#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO"]

DECLARATION_PATTERN = re.compile(r"^##(INFO|FORMAT)=(.*)$")
META_PATTERN = re.compile(r"^##(fileformat|fileDate|source|reference|phasing)=(.*)$")


class FieldType(Enum):
    """Value type of an INFO or FORMAT field."""

    FLOAT = "Float"
    INTEGER = "Integer"
    BOOL = "Flag"
    STRING = "String"
    UNKNOWN = "Unknown"

    @property
    def is_numeric(self) -> bool:
        return self in (FieldType.FLOAT, FieldType.INTEGER)


TYPE_TABLE = {
    "Integer": FieldType.INTEGER,
    "Float": FieldType.FLOAT,
    "Flag": FieldType.BOOL,
    "String": FieldType.STRING,
    "Character": FieldType.STRING,
}


class Cardinality(Enum):
    """How many values a field carries."""

    FIXED = "fixed"
    PER_ALT_ALLELE = "A"
    PER_ALLELE = "R"
    PER_GENOTYPE = "G"
    VARIABLE = "."


@dataclass(frozen=True)
class FieldNumber:
    """Declared ``Number`` of a field: a cardinality kind plus a fixed count."""

    cardinality: Cardinality
    count: int = 0

    def __str__(self) -> str:
        if self.cardinality is Cardinality.FIXED:
            return str(self.count)
        return self.cardinality.value

    def expected_count(self, n_alts: int, ploidy: int = 2) -> int | None:
        """Number of values expected at a record; None when variable."""
        size = get_array_size(self, n_alts, ploidy)
        return None if size < 0 else size


VARIABLE_NUMBER = FieldNumber(Cardinality.VARIABLE)


def get_array_size(number: FieldNumber, n_alts: int, ploidy: int = 2) -> int:
    """Calculate expected array size for INFO/FORMAT fields."""
    if number.cardinality is Cardinality.PER_ALT_ALLELE:
        return n_alts
    if number.cardinality is Cardinality.PER_ALLELE:
        return n_alts + 1
    if number.cardinality is Cardinality.PER_GENOTYPE:
        return comb(n_alts + ploidy, ploidy)
    if number.cardinality is Cardinality.VARIABLE:
        return -1  # Variable length
    return number.count


def parse_field_type(type_str: str) -> FieldType:
    """Map a header ``Type`` token to a FieldType, degrading to UNKNOWN."""
    field_type = TYPE_TABLE.get(type_str)
    if field_type is None:
        logger.warning("Unrecognized field type '%s', treating as Unknown", type_str)
        return FieldType.UNKNOWN
    return field_type


def parse_field_number(number_str: str) -> FieldNumber:
    """Map a header ``Number`` token to a FieldNumber.

    Raises:
        HeaderParseError: If the token is neither A, R, G, '.' nor an integer
    """
    for cardinality in (Cardinality.PER_ALT_ALLELE, Cardinality.PER_ALLELE,
                        Cardinality.PER_GENOTYPE, Cardinality.VARIABLE):
        if number_str == cardinality.value:
            return FieldNumber(cardinality)
    try:
        count = int(number_str)
    except ValueError:
        raise HeaderParseError(f"Invalid Number '{number_str}' in field declaration") from None
    if count < 0:
        raise HeaderParseError(f"Invalid Number '{number_str}' in field declaration")
    return FieldNumber(Cardinality.FIXED, count)


@dataclass
class FieldDefinition:
    """One ``##INFO`` or ``##FORMAT`` declaration."""

    tag: str
    type: FieldType
    number: FieldNumber
    description: str = ""


@dataclass
class VCFHeader:
    """Header-derived configuration shared by every record of a stream.

    Holds the record-level (INFO) and sample-level (FORMAT) field tables and
    the ordered sample names from the column header line.
    """

    info_fields: dict[str, FieldDefinition] = field(default_factory=dict)
    format_fields: dict[str, FieldDefinition] = field(default_factory=dict)
    sample_names: list[str] = field(default_factory=list)
    meta_lines: list[str] = field(default_factory=list)
    fileformat: str | None = None
    file_date: str | None = None
    source: str | None = None
    reference: str | None = None
    phasing: str | None = None

    def info_type(self, key: str) -> FieldType:
        definition = self.info_fields.get(key)
        return definition.type if definition else FieldType.UNKNOWN

    def format_type(self, key: str) -> FieldType:
        definition = self.format_fields.get(key)
        return definition.type if definition else FieldType.UNKNOWN

    def info_number(self, key: str) -> FieldNumber:
        definition = self.info_fields.get(key)
        return definition.number if definition else VARIABLE_NUMBER

    def format_number(self, key: str) -> FieldNumber:
        definition = self.format_fields.get(key)
        return definition.number if definition else VARIABLE_NUMBER

    def info_types(self) -> dict[str, FieldType]:
        return {tag: definition.type for tag, definition in self.info_fields.items()}

    def format_types(self) -> dict[str, FieldType]:
        return {tag: definition.type for tag, definition in self.format_fields.items()}

    def add_header_line(self, line: str) -> None:
        """Append a ``##`` meta line, registering any field it declares."""
        line = line.rstrip("\r\n")
        if not line.startswith("##"):
            raise HeaderParseError(f"Header meta lines must start with '##': {line!r}")
        _apply_meta_line(self, line)
        self.meta_lines.append(line)

    def update_samples(self, sample_names: list[str]) -> None:
        self.sample_names = list(sample_names)

    def column_header(self, sample_names: list[str] | None = None) -> str:
        names = self.sample_names if sample_names is None else sample_names
        columns = list(FIXED_COLUMNS)
        if names:
            columns.append("FORMAT")
            columns.extend(names)
        return "\t".join(columns)

    def to_text(self, sample_names: list[str] | None = None) -> str:
        """Render the header, ending with the column header line."""
        return "\n".join([*self.meta_lines, self.column_header(sample_names)]) + "\n"


def _apply_meta_line(header: VCFHeader, line: str) -> None:
    declaration = DECLARATION_PATTERN.match(line)
    if declaration:
        kind, body = declaration.groups()
        definition = VCFHeaderParser.parse_declaration(body)
        if kind == "INFO":
            header.info_fields[definition.tag] = definition
        else:
            header.format_fields[definition.tag] = definition
        return

    meta = META_PATTERN.match(line)
    if meta:
        key, value = meta.groups()
        if key == "fileDate":
            header.file_date = value
        else:
            setattr(header, key, value)


class VCFHeaderParser:
    """Parser for VCF header information."""

    def parse(self, lines: Iterable[str]) -> VCFHeader:
        """Consume header lines up to and including the ``#CHROM`` line.

        Lines are consumed lazily, so a line iterator positioned at the start
        of a file is left positioned at the first record.

        Raises:
            HeaderParseError: On a malformed declaration or a missing
                column header line
        """
        header = VCFHeader()
        for raw_line in lines:
            line = raw_line.rstrip("\r\n")
            if not line:
                continue
            if line.startswith("##"):
                header.add_header_line(line)
            elif line.startswith("#CHROM"):
                header.update_samples(self._parse_column_header(line))
                logger.debug(
                    "Parsed header: %d INFO, %d FORMAT fields, %d samples",
                    len(header.info_fields),
                    len(header.format_fields),
                    len(header.sample_names),
                )
                return header
            else:
                raise HeaderParseError(f"Unexpected line before column header: {line[:80]!r}")
        raise HeaderParseError("Missing #CHROM column header line")

    def parse_text(self, text: str) -> VCFHeader:
        return self.parse(text.splitlines())

    def _parse_column_header(self, line: str) -> list[str]:
        columns = line.split("\t")
        if len(columns) < len(FIXED_COLUMNS):
            raise HeaderParseError(
                f"Column header has {len(columns)} columns, expected at least {len(FIXED_COLUMNS)}"
            )
        return columns[9:]

    @staticmethod
    def parse_declaration(body: str) -> FieldDefinition:
        """Parse the ``<ID=..,Number=..,Type=..>`` part of a declaration."""
        if not (body.startswith("<") and body.endswith(">")):
            raise HeaderParseError(f"Field declaration must be enclosed in '<>': {body!r}")

        field_def = VCFHeaderParser._parse_field_definition(body[1:-1])
        missing = [key for key in ("ID", "Number", "Type") if key not in field_def]
        if missing:
            raise HeaderParseError(
                f"Field declaration is missing {', '.join(missing)}: {body!r}"
            )

        return FieldDefinition(
            tag=field_def["ID"],
            type=parse_field_type(field_def["Type"]),
            number=parse_field_number(field_def["Number"]),
            description=field_def.get("Description", ""),
        )

    @staticmethod
    def _parse_field_definition(field_string: str) -> dict[str, str]:
        """Parse a field definition string like 'ID=AC,Number=A,Type=Integer,Description="..."'"""
        field_def = {}

        # Descriptions may contain commas
        parts = []
        current_part = ""
        in_quotes = False

        for char in field_string:
            if char == '"':
                in_quotes = not in_quotes
                current_part += char
            elif char == "," and not in_quotes:
                parts.append(current_part)
                current_part = ""
            else:
                current_part += char

        if current_part:
            parts.append(current_part)

        for part in parts:
            if "=" in part:
                key, value = part.split("=", 1)
                if value.startswith('"') and value.endswith('"') and len(value) >= 2:
                    value = value[1:-1]
                field_def[key] = value

        return field_def
