"""Pytest configuration and fixtures for vcfstream tests."""

import io
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from fixtures.vcf_generator import (  # noqa: E402
    SyntheticVariant,
    VCFGenerator,
    make_multiallelic_vcf,
    make_trio_vcf,
    make_trio_vcf_file,
)

from vcfstream.header import VCFHeaderParser  # noqa: E402
from vcfstream.reader import VariantCallFile  # noqa: E402


@pytest.fixture
def vcf_generator():
    """Provide VCFGenerator class for tests."""
    return VCFGenerator


@pytest.fixture
def synthetic_variant_factory():
    """Factory for creating SyntheticVariant instances."""

    def _factory(**kwargs):
        defaults = {
            "chrom": "chr1",
            "pos": 100,
            "ref": "A",
            "alt": ["G"],
        }
        defaults.update(kwargs)
        return SyntheticVariant(**defaults)

    return _factory


@pytest.fixture
def header():
    """Header parsed from the generator template with three samples."""
    text = VCFGenerator.HEADER_TEMPLATE + (
        "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tCHILD\tFATHER\tMOTHER\n"
    )
    return VCFHeaderParser().parse_text(text)


@pytest.fixture
def trio_vcf():
    """Open reader over the trio VCF held in memory."""
    vcf = VariantCallFile()
    assert vcf.open_stream(io.StringIO(make_trio_vcf()))
    yield vcf
    vcf.close()


@pytest.fixture
def multiallelic_variant():
    """First record of the multi-allelic VCF (REF=A, ALT=G,T)."""
    vcf = VariantCallFile()
    assert vcf.open_stream(io.StringIO(make_multiallelic_vcf(n_alts=2)))
    return vcf.get_next_variant()


@pytest.fixture
def trio_vcf_file():
    """Generate a VCF file with trio genotypes."""
    path = make_trio_vcf_file()
    yield path
    if path.exists():
        path.unlink()
