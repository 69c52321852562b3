"""Streaming VCF reader with optional indexed region access."""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TextIO

from .errors import HeaderParseError, StreamNotOpenError
from .header import VCFHeader, VCFHeaderParser
from .models import Variant

logger = logging.getLogger(__name__)

REGION_PATTERN = re.compile(r"^(?P<chrom>[^:]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$")

INDEXED_SUFFIXES = (".gz", ".bgz")


@dataclass(frozen=True)
class Region:
    """Genomic interval with 1-based inclusive coordinates."""

    chrom: str
    start: int | None = None
    end: int | None = None

    @classmethod
    def parse(cls, region: str) -> "Region":
        """Parse ``chrom``, ``chrom:start`` or ``chrom:start-end``.

        Raises:
            ValueError: If the region string is malformed
        """
        match = REGION_PATTERN.match(region.strip())
        if not match:
            raise ValueError(f"Invalid region '{region}'. Expected chrom[:start[-end]]")

        start = match.group("start")
        end = match.group("end")
        parsed = cls(
            chrom=match.group("chrom"),
            start=int(start.replace(",", "")) if start else None,
            end=int(end.replace(",", "")) if end else None,
        )
        if parsed.start is not None and parsed.end is not None and parsed.end < parsed.start:
            raise ValueError(f"Invalid region '{region}': end is before start")
        return parsed

    def contains(self, chrom: str, position: int) -> bool:
        if chrom != self.chrom:
            return False
        if self.start is not None and position < self.start:
            return False
        if self.end is not None and position > self.end:
            return False
        return True

    def __str__(self) -> str:
        if self.start is None:
            return self.chrom
        if self.end is None:
            return f"{self.chrom}:{self.start}"
        return f"{self.chrom}:{self.start}-{self.end}"


class LineSource(Protocol):
    """Protocol for the line-oriented input underneath a VariantCallFile."""

    def read_line(self) -> str | None:
        """Return the next line without its newline, or None at end of input."""
        ...

    def set_region(self, region: Region) -> bool:
        """Reposition to a region; False when the source cannot seek."""
        ...

    def close(self) -> None:
        ...


class TextLineSource:
    """Sequential source over a text stream (plain VCF file or in-memory text)."""

    def __init__(self, stream: TextIO, owns_stream: bool = False):
        self._stream = stream
        self._owns_stream = owns_stream

    def read_line(self) -> str | None:
        line = self._stream.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    def set_region(self, region: Region) -> bool:
        logger.warning("Region queries need a bgzip-compressed, indexed VCF; ignoring %s", region)
        return False

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()


class IndexedVCFSource:
    """Source over a compressed VCF read through cyvcf2.

    The header text comes from ``raw_header``; record lines are the text form
    of each cyvcf2 variant. Region queries use the tabix/CSI index.
    """

    def __init__(self, path: Path | str):
        from cyvcf2 import VCF

        self._vcf = VCF(str(path))
        self._header_lines = self._vcf.raw_header.rstrip("\n").split("\n")
        self._records = iter(self._vcf)

    def read_line(self) -> str | None:
        if self._header_lines:
            return self._header_lines.pop(0)
        variant = next(self._records, None)
        if variant is None:
            return None
        return str(variant).rstrip("\n")

    def set_region(self, region: Region) -> bool:
        try:
            self._records = iter(self._vcf(str(region)))
        except Exception as e:
            # cyvcf2 raises a bare Exception when no index can be loaded
            logger.error("Cannot query region %s: %s", region, e)
            return False
        self._header_lines = []
        return True

    def close(self) -> None:
        self._vcf.close()


class VariantCallFile:
    """Pull-based reader producing one Variant per record line.

    Usage:
        with VariantCallFile() as vcf:
            if vcf.open("calls.vcf"):
                for variant in vcf:
                    ...
    """

    def __init__(self):
        self.header: VCFHeader | None = None
        self._source: LineSource | None = None
        self._region: Region | None = None
        self._previous: Variant | None = None
        self._done = False
        self._eof = False

    # -- opening ------------------------------------------------------------

    def open(self, path: Path | str) -> bool:
        """Open a VCF path, choosing the indexed source for compressed files."""
        path = Path(path)
        if path.suffix in INDEXED_SUFFIXES:
            return self.open_source(IndexedVCFSource(path))
        return self.open_source(TextLineSource(open(path), owns_stream=True))

    def open_stream(self, stream: TextIO) -> bool:
        return self.open_source(TextLineSource(stream))

    def open_source(self, source: LineSource) -> bool:
        """Attach a line source and parse its header.

        Returns:
            True if the header parsed; otherwise the stream stays unusable
        """
        self._source = source
        self._done = False
        self._eof = False
        try:
            self.header = VCFHeaderParser().parse(self._header_lines())
        except HeaderParseError as e:
            logger.error("Failed to parse VCF header: %s", e)
            self.header = None
            return False
        return True

    def open_for_output(self, header_text: str) -> bool:
        """Parse a header without an input source, e.g. to render records."""
        self._source = None
        try:
            self.header = VCFHeaderParser().parse_text(header_text)
        except HeaderParseError as e:
            logger.error("Failed to parse VCF header: %s", e)
            self.header = None
            return False
        return True

    def _header_lines(self) -> Iterator[str]:
        while True:
            line = self._read_line()
            if line is None:
                return
            yield line

    def _read_line(self) -> str | None:
        line = self._source.read_line()
        if line is None:
            self._eof = True
        return line

    # -- state --------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self.header is not None

    @property
    def sample_names(self) -> list[str]:
        return self.header.sample_names if self.header else []

    @property
    def eof(self) -> bool:
        """The underlying source has been exhausted."""
        return self._eof

    @property
    def done(self) -> bool:
        """get_next_variant has reported end of input."""
        return self._done

    # -- reading ------------------------------------------------------------

    def set_region(self, region: Region | str) -> bool:
        """Reposition to a region; subsequent records fall within it."""
        if not self.is_open or self._source is None:
            raise StreamNotOpenError("Cannot set a region on a stream that is not open")
        if isinstance(region, str):
            region = Region.parse(region)
        if not self._source.set_region(region):
            return False
        self._region = region
        self._previous = None
        self._done = False
        self._eof = False
        return True

    def get_next_variant(self) -> Variant | None:
        """Parse the next record, or return None at end of input.

        Raises:
            StreamNotOpenError: If the header failed to parse
            RecordParseError: If a record line is malformed
        """
        if not self.is_open or self._source is None:
            raise StreamNotOpenError("VCF stream is not open")

        while True:
            line = self._read_line()
            if line is None:
                self._done = True
                return None
            if not line or line.startswith("#"):
                continue
            variant = Variant.parse(line, self.header, self._previous)
            self._previous = variant
            if self._region is None or self._region.contains(variant.sequence_name, variant.position):
                return variant

    def __iter__(self) -> Iterator[Variant]:
        while (variant := self.get_next_variant()) is not None:
            yield variant

    def close(self) -> None:
        if self._source is not None:
            self._source.close()
            self._source = None

    def __enter__(self) -> "VariantCallFile":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
