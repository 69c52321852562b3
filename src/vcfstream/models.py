"""Data model for parsed VCF records."""

import logging
from dataclasses import dataclass, field

from .errors import AmbiguousFieldAccessError, FieldConversionError, RecordParseError
from .genotype import GENOTYPE_SEPARATORS, genotype_ploidy
from .header import Cardinality, FieldNumber, FieldType, VCFHeader

logger = logging.getLogger(__name__)

MISSING_VALUE = "."

# Accessor index sentinels. A plain non-negative int is a direct position.
INDEX_NONE = None
ALLELE_NUMBER = -2
GENOTYPE_NUMBER = -1

# Marks a relative index that could not be resolved (soft miss)
_UNRESOLVED = object()


def _format_quality(quality: float | None) -> str:
    if quality is None:
        return MISSING_VALUE
    if quality.is_integer():
        return str(int(quality))
    return str(quality)


def _genotype_index(alleles: list[int]) -> int | None:
    """Position of a genotype in the VCF ``Number=G`` ordering.

    Diploid: F(j/k) = k*(k+1)/2 + j with j <= k. Haploid: the allele index.
    """
    if len(alleles) == 1:
        return alleles[0]
    if len(alleles) == 2:
        j, k = sorted(alleles)
        return k * (k + 1) // 2 + j
    return None


@dataclass
class Variant:
    """One parsed VCF record.

    ``info`` and the per-sample maps hold raw text values split on commas;
    typed conversion happens in the accessors, driven by the header tables.
    """

    sequence_name: str
    position: int
    id: str
    ref: str
    alt: list[str]
    filter: str
    quality: float | None
    info: dict[str, list[str]] = field(default_factory=dict)
    info_flags: dict[str, bool] = field(default_factory=dict)
    format: list[str] = field(default_factory=list)
    samples: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    sample_names: list[str] = field(default_factory=list)
    output_sample_names: list[str] = field(default_factory=list)
    header: VCFHeader = field(default_factory=VCFHeader, repr=False, compare=False)
    format_text: str = field(default="", repr=False, compare=False)

    @classmethod
    def parse(cls, line: str, header: VCFHeader, previous: "Variant | None" = None) -> "Variant":
        """Parse one tab-delimited record line.

        Args:
            line: Record line (trailing newline allowed)
            header: Header of the stream the line belongs to
            previous: Previously parsed record; its FORMAT tag list is reused
                when the FORMAT column text is identical

        Raises:
            RecordParseError: If the fixed columns are missing or malformed
        """
        fields = line.rstrip("\r\n").split("\t")
        if len(fields) < 8:
            raise RecordParseError(f"Expected at least 8 columns, got {len(fields)}: {line[:80]!r}")

        chrom, pos, variant_id, ref, alt, qual, filter_status, info = fields[:8]
        try:
            position = int(pos)
        except ValueError:
            raise RecordParseError(f"Invalid POS '{pos}' at {chrom}") from None
        try:
            quality = None if qual == MISSING_VALUE else float(qual)
        except ValueError:
            raise RecordParseError(f"Invalid QUAL '{qual}' at {chrom}:{pos}") from None

        variant = cls(
            sequence_name=chrom,
            position=position,
            id=variant_id,
            ref=ref,
            alt=[] if alt == MISSING_VALUE else alt.split(","),
            filter=filter_status,
            quality=quality,
            sample_names=list(header.sample_names),
            output_sample_names=list(header.sample_names),
            header=header,
        )
        variant._parse_info(info)

        if len(fields) > 8:
            variant.format_text = fields[8]
            if previous is not None and previous.format_text == fields[8]:
                variant.format = list(previous.format)
            else:
                variant.format = fields[8].split(":")

            sample_columns = fields[9:]
            if len(sample_columns) > len(header.sample_names):
                logger.debug(
                    "Ignoring %d extra sample columns at %s:%d",
                    len(sample_columns) - len(header.sample_names),
                    chrom,
                    position,
                )
            for name, column in zip(header.sample_names, sample_columns, strict=False):
                variant.samples[name] = variant._parse_sample(column)

        return variant

    def _parse_info(self, info: str) -> None:
        if not info or info == MISSING_VALUE:
            return
        for item in info.split(";"):
            if not item:
                continue
            if "=" in item:
                key, value = item.split("=", 1)
                self.info[key] = value.split(",")
            else:
                # Flags keep their slot in the INFO order with no values
                self.info[item] = []
                self.info_flags[item] = True

    def _parse_sample(self, column: str) -> dict[str, list[str]]:
        parts = column.split(":")
        sample_data = {}
        for i, key in enumerate(self.format):
            value = parts[i] if i < len(parts) and parts[i] != "" else MISSING_VALUE
            sample_data[key] = value.split(",")
        return sample_data

    # -- alleles ------------------------------------------------------------

    @property
    def alleles(self) -> list[str]:
        """Reference followed by alternates; genotype codes index into this."""
        return [self.ref, *self.alt]

    @property
    def allele_indices(self) -> dict[str, int]:
        return {allele: i for i, allele in enumerate(self.alleles)}

    def get_allele_index(self, allele: str) -> int | None:
        return self.allele_indices.get(allele)

    def format_alt(self) -> str:
        """Comma-separated alternate alleles."""
        return ",".join(self.alt)

    def format_alleles(self) -> str:
        """Comma-separated list of all alleles, reference first."""
        return ",".join(self.alleles)

    # -- raw access ---------------------------------------------------------

    def has_info(self, key: str) -> bool:
        return key in self.info or key in self.info_flags

    def has_sample_value(self, key: str, sample: str) -> bool:
        return key in self.samples.get(sample, {})

    def get_info_values(self, key: str) -> list[str] | None:
        """Raw INFO values, or None when the tag is absent."""
        if key in self.info:
            return self.info[key]
        if key in self.info_flags:
            return []
        return None

    def get_sample_values(self, key: str, sample: str) -> list[str] | None:
        """Raw sample values, or None when the sample or tag is absent."""
        return self.samples.get(sample, {}).get(key)

    def sample_ploidy(self, sample: str) -> int:
        genotype = self.get_sample_values("GT", sample)
        if not genotype:
            return 2
        return genotype_ploidy(genotype[0])

    # -- index resolution ---------------------------------------------------

    def value_index(
        self,
        number: FieldNumber,
        allele: str | None = None,
        sample: str | None = None,
        index: int | None = ALLELE_NUMBER,
    ) -> object:
        """Resolve an allele- or genotype-relative index to a list position.

        Returns an int position, None when the field carries a single value,
        or an unresolved marker when the allele/genotype cannot be located.
        Fields that are not laid out per allele or genotype resolve to their
        first value.
        """
        cardinality = number.cardinality
        if cardinality in (Cardinality.FIXED, Cardinality.VARIABLE):
            if cardinality is Cardinality.FIXED and number.count <= 1:
                return None
            return 0

        allele_index = self.get_allele_index(allele) if allele is not None else None

        if cardinality is Cardinality.PER_GENOTYPE:
            if index == GENOTYPE_NUMBER and sample is not None:
                genotype = self.get_sample_values("GT", sample)
                if not genotype:
                    return _UNRESOLVED
                called = GENOTYPE_SEPARATORS.split(genotype[0])
                if not all(a.isdigit() for a in called):
                    return _UNRESOLVED
                position = _genotype_index([int(a) for a in called])
            elif allele_index is not None:
                ploidy = self.sample_ploidy(sample) if sample is not None else 2
                position = _genotype_index([allele_index] * ploidy)
            else:
                return _UNRESOLVED
            return _UNRESOLVED if position is None else position

        if allele_index is None:
            return _UNRESOLVED
        if cardinality is Cardinality.PER_ALT_ALLELE:
            return allele_index - 1 if allele_index > 0 else _UNRESOLVED
        return allele_index

    def _select(
        self,
        key: str,
        values: list[str] | None,
        number: FieldNumber,
        index: int | None,
        allele: str | None,
        sample: str | None = None,
    ) -> str | None:
        """Pick one text value, or None for a soft miss."""
        if values is None:
            return None

        if index in (ALLELE_NUMBER, GENOTYPE_NUMBER):
            position = self.value_index(number, allele, sample, index)
            if position is _UNRESOLVED:
                return None
            index = position

        if index is None:
            ploidy = self.sample_ploidy(sample) if sample is not None else 2
            expected = number.expected_count(len(self.alt), ploidy)
            if expected == 1:
                value = ",".join(values)
            elif len(values) == 1:
                value = values[0]
            elif not values:
                return None
            else:
                raise AmbiguousFieldAccessError(
                    f"Field {key} has {len(values)} values; an index is required"
                )
        else:
            if index < 0 or index >= len(values):
                return None
            value = values[index]

        return None if value == MISSING_VALUE else value

    @staticmethod
    def _to_float(key: str, value: str | None, field_type: FieldType) -> float:
        if value is None:
            return 0.0
        if field_type is FieldType.BOOL:
            raise FieldConversionError(f"Field {key} is a flag, not a number")
        try:
            return float(value)
        except ValueError:
            raise FieldConversionError(f"Could not convert {key}={value!r} to a number") from None

    # -- INFO accessors -----------------------------------------------------

    def get_info_value_bool(self, key: str, index: int | None = INDEX_NONE, allele: str | None = None) -> bool:
        field_type = self.header.info_type(key)
        if field_type is not FieldType.BOOL:
            if not self.has_info(key):
                return False
            raise FieldConversionError(f"Field {key} is of type {field_type.value}, not Flag")
        return self.has_info(key)

    def get_info_value_float(self, key: str, index: int | None = INDEX_NONE, allele: str | None = None) -> float:
        value = self._select(key, self.get_info_values(key), self.header.info_number(key), index, allele)
        return self._to_float(key, value, self.header.info_type(key))

    def get_info_value_string(self, key: str, index: int | None = INDEX_NONE, allele: str | None = None) -> str:
        value = self._select(key, self.get_info_values(key), self.header.info_number(key), index, allele)
        return "" if value is None else value

    # -- sample accessors ---------------------------------------------------

    def get_sample_value_bool(
        self, key: str, sample: str, index: int | None = INDEX_NONE, allele: str | None = None
    ) -> bool:
        field_type = self.header.format_type(key)
        if field_type is not FieldType.BOOL:
            if not self.has_sample_value(key, sample):
                return False
            raise FieldConversionError(f"Field {key} is of type {field_type.value}, not Flag")
        return self.has_sample_value(key, sample)

    def get_sample_value_float(
        self, key: str, sample: str, index: int | None = INDEX_NONE, allele: str | None = None
    ) -> float:
        value = self._select(
            key, self.get_sample_values(key, sample), self.header.format_number(key), index, allele, sample
        )
        return self._to_float(key, value, self.header.format_type(key))

    def get_sample_value_string(
        self, key: str, sample: str, index: int | None = INDEX_NONE, allele: str | None = None
    ) -> str:
        value = self._select(
            key, self.get_sample_values(key, sample), self.header.format_number(key), index, allele, sample
        )
        return "" if value is None else value

    # -- dispatching accessors ----------------------------------------------

    def get_value_bool(self, key: str, sample: str = "", index: int | None = INDEX_NONE) -> bool:
        if not sample:
            return self.get_info_value_bool(key, index)
        return self.get_sample_value_bool(key, sample, index)

    def get_value_float(self, key: str, sample: str = "", index: int | None = INDEX_NONE) -> float:
        if not sample:
            return self.get_info_value_float(key, index)
        return self.get_sample_value_float(key, sample, index)

    def get_value_string(self, key: str, sample: str = "", index: int | None = INDEX_NONE) -> str:
        if not sample:
            return self.get_info_value_string(key, index)
        return self.get_sample_value_string(key, sample, index)

    # -- mutation -----------------------------------------------------------

    def add_filter(self, tag: str) -> None:
        """Append a tag to the FILTER column, replacing PASS or missing."""
        if self.filter in ("", MISSING_VALUE, "PASS"):
            self.filter = tag
        else:
            self.filter = f"{self.filter};{tag}"

    def add_format_field(self, key: str) -> None:
        """Declare a new FORMAT tag, giving every sample a missing value."""
        if key in self.format:
            return
        self.format.append(key)
        self.format_text = ":".join(self.format)
        for sample_data in self.samples.values():
            sample_data.setdefault(key, [MISSING_VALUE])

    def set_output_sample_names(self, sample_names: list[str]) -> None:
        self.output_sample_names = list(sample_names)

    # -- rendering ----------------------------------------------------------

    def _format_info(self) -> str:
        parts = [
            key if key in self.info_flags and not values else f"{key}={','.join(values)}"
            for key, values in self.info.items()
        ]
        parts.extend(key for key in self.info_flags if key not in self.info)
        return ";".join(parts) if parts else MISSING_VALUE

    def _format_sample(self, sample: str) -> str:
        sample_data = self.samples.get(sample)
        if sample_data is None:
            return MISSING_VALUE
        return ":".join(",".join(sample_data.get(key, [MISSING_VALUE])) for key in self.format)

    def __str__(self) -> str:
        columns = [
            self.sequence_name,
            str(self.position),
            self.id,
            self.ref,
            self.format_alt() or MISSING_VALUE,
            _format_quality(self.quality),
            self.filter,
            self._format_info(),
        ]
        if self.format:
            columns.append(":".join(self.format))
            columns.extend(self._format_sample(name) for name in self.output_sample_names)
        return "\t".join(columns)
