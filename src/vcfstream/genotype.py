"""Genotype call decomposition and classification.

A genotype call such as ``"0/1"`` or ``"1|2"`` is decomposed into a mapping
from allele index to the number of times that allele was called. Phase is
irrelevant to the decomposition. Missing alleles (``.``) map to
``NULL_ALLELE``.

Examples:
    "1/1" -> {1: 2}
    "0/1" -> {0: 1, 1: 1}
    "./." -> {-1: 2}
"""

import re

NULL_ALLELE = -1

GENOTYPE_SEPARATORS = re.compile(r"[/|]")


def _parse_allele(allele_str: str) -> int:
    """Parse allele string to integer, returning NULL_ALLELE for missing."""
    if allele_str == "." or not allele_str.isdigit():
        return NULL_ALLELE
    return int(allele_str)


def decompose_genotype(genotype: str) -> dict[int, int]:
    """Decompose a genotype call into allele index counts.

    Args:
        genotype: Genotype string (e.g., "0/0", "0|1", "1/1", "./.")

    Returns:
        Dict mapping allele index (NULL_ALLELE for missing) to call count
    """
    counts: dict[int, int] = {}
    for allele_str in GENOTYPE_SEPARATORS.split(genotype):
        allele = _parse_allele(allele_str)
        counts[allele] = counts.get(allele, 0) + 1
    return counts


def genotype_ploidy(genotype: str) -> int:
    """Number of alleles called in a genotype string."""
    return len(GENOTYPE_SEPARATORS.split(genotype))


def null_genotype(genotype: str) -> str:
    """Build an all-missing genotype with the same ploidy and separators.

    "0|1" -> ".|.", "1/1/2" -> "././.", "1" -> "."
    """
    separators = GENOTYPE_SEPARATORS.findall(genotype)
    return "." + "".join(sep + "." for sep in separators)


def is_het(genotype: dict[int, int]) -> bool:
    """Exactly two distinct called (non-null) alleles."""
    return len([allele for allele in genotype if allele != NULL_ALLELE]) == 2


def is_hom(genotype: dict[int, int]) -> bool:
    """Exactly one distinct allele, null or not."""
    return len(genotype) == 1


def has_non_ref(genotype: dict[int, int]) -> bool:
    """Any allele other than the reference and the null allele is present."""
    return any(allele not in (0, NULL_ALLELE) for allele in genotype)


def is_hom_ref(genotype: dict[int, int]) -> bool:
    return len(genotype) == 1 and 0 in genotype


def is_hom_non_ref(genotype: dict[int, int]) -> bool:
    return len(genotype) == 1 and 0 not in genotype and NULL_ALLELE not in genotype


def is_null(genotype: dict[int, int]) -> bool:
    """The null allele is present; partial and full missingness both count."""
    return NULL_ALLELE in genotype
