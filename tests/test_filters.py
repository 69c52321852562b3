"""Tests for filter spec tokenizing, postfix conversion and evaluation."""

import pytest

from vcfstream.errors import (
    AmbiguousFieldAccessError,
    FieldConversionError,
    FilterEvaluationError,
    FilterSyntaxError,
    FilterTypeError,
    UnboundVariableError,
)
from vcfstream.filters import (
    FilterType,
    TokenType,
    VariantFilter,
    filter_variables,
    to_postfix,
    tokenize_filter_spec,
)
from vcfstream.header import FieldType

VARIABLES = {
    "DP": FieldType.INTEGER,
    "AF": FieldType.FLOAT,
    "DB": FieldType.BOOL,
    "A": FieldType.BOOL,
    "B": FieldType.BOOL,
    "SYMBOL": FieldType.STRING,
}


def postfix_values(spec, variables=VARIABLES):
    return [token.value for token in to_postfix(tokenize_filter_spec(spec, variables))]


def record_filter(vcf, spec):
    return VariantFilter(spec, FilterType.RECORD, filter_variables(vcf.header, FilterType.RECORD))


def sample_filter(vcf, spec):
    return VariantFilter(spec, FilterType.SAMPLE, filter_variables(vcf.header, FilterType.SAMPLE))


class TestTokenizer:
    """Test splitting specs into typed tokens."""

    def test_simple_comparison(self):
        tokens = tokenize_filter_spec("DP > 10", VARIABLES)
        assert [t.type for t in tokens] == [
            TokenType.NUMERIC_VARIABLE,
            TokenType.GREATER_THAN_OPERATOR,
            TokenType.NUMBER,
        ]
        assert tokens[2].number == 10.0

    def test_operators_split_without_spaces(self):
        tokens = tokenize_filter_spec("1>2&1<3", VARIABLES)
        assert [t.value for t in tokens] == ["1", ">", "2", "&", "1", "<", "3"]

    def test_negative_literal(self):
        tokens = tokenize_filter_spec("DP > -5", VARIABLES)
        assert tokens[-1].type is TokenType.NUMBER
        assert tokens[-1].number == -5.0

    def test_subtraction_is_not_a_literal(self):
        tokens = tokenize_filter_spec("DP-5", VARIABLES)
        assert [t.type for t in tokens] == [
            TokenType.NUMERIC_VARIABLE,
            TokenType.SUBTRACT_OPERATOR,
            TokenType.NUMBER,
        ]

    def test_quoted_strings(self):
        tokens = tokenize_filter_spec("SYMBOL = 'BRCA 1'", VARIABLES)
        assert tokens[-1].type is TokenType.STRING
        assert tokens[-1].value == "BRCA 1"
        tokens = tokenize_filter_spec('SYMBOL = "TP53"', VARIABLES)
        assert tokens[-1].value == "TP53"

    def test_variable_types(self):
        tokens = tokenize_filter_spec("DB & SYMBOL = 'x'", VARIABLES)
        assert tokens[0].type is TokenType.BOOLEAN_VARIABLE
        assert tokens[2].type is TokenType.STRING_VARIABLE

    def test_unbound_variable(self):
        with pytest.raises(UnboundVariableError, match="NOPE"):
            tokenize_filter_spec("NOPE > 1", VARIABLES)

    def test_unknown_type_variable(self):
        with pytest.raises(FilterTypeError):
            tokenize_filter_spec("X > 1", {"X": FieldType.UNKNOWN})

    @pytest.mark.parametrize("spec", ["DP > 10 $", "DP > 'open", "", "   ", "DP > 1.2.3"])
    def test_syntax_errors(self, spec):
        with pytest.raises(FilterSyntaxError):
            tokenize_filter_spec(spec, VARIABLES)


class TestPostfix:
    """Test shunting-yard ordering."""

    def test_multiplication_binds_tighter(self):
        assert postfix_values("1 + 2 * 3") == ["1", "2", "3", "*", "+"]

    def test_parentheses(self):
        assert postfix_values("(1+2)*3") == ["1", "2", "+", "3", "*"]

    def test_left_associative(self):
        assert postfix_values("8/2/2") == ["8", "2", "/", "2", "/"]

    def test_not_binds_tighter_than_and(self):
        assert postfix_values("!A & B") == ["A", "!", "B", "&"]

    def test_and_binds_tighter_than_or(self):
        assert postfix_values("A | B & DB") == ["A", "B", "DB", "&", "|"]

    def test_comparison_below_arithmetic(self):
        assert postfix_values("DP + 1 > AF") == ["DP", "1", "+", "AF", ">"]

    @pytest.mark.parametrize("spec", ["(1+2", "1+2)", "((1 > 2)", ")("])
    def test_unbalanced(self, spec):
        with pytest.raises(FilterSyntaxError):
            postfix_values(spec)


class TestCompile:
    """Test construction-time checks."""

    @pytest.mark.parametrize("spec", ["DP + 1", "DP > 'x'", "DB > DB", "!1 > 2", "A + B > 1", "SYMBOL"])
    def test_type_errors(self, spec):
        with pytest.raises(FilterTypeError):
            VariantFilter(spec, FilterType.RECORD, VARIABLES)

    @pytest.mark.parametrize("spec", ["1 +", "1 2", "!", "> 1"])
    def test_arity_errors(self, spec):
        with pytest.raises(FilterSyntaxError):
            VariantFilter(spec, FilterType.RECORD, VARIABLES)

    def test_validate(self):
        assert VariantFilter.validate("DP > 10 & !DB", VARIABLES) == []
        errors = VariantFilter.validate("DP >", VARIABLES)
        assert len(errors) == 1

    def test_filter_variables_by_scope(self, trio_vcf):
        record = filter_variables(trio_vcf.header, FilterType.RECORD)
        sample = filter_variables(trio_vcf.header, FilterType.SAMPLE)
        assert record["QUAL"] is FieldType.FLOAT
        assert record["DP"] is FieldType.INTEGER
        assert "HET" not in record
        assert sample["HET"] is FieldType.BOOL
        assert sample["GQ"] is FieldType.INTEGER
        assert "QUAL" not in sample

    def test_declared_field_shadows_pseudo_variable(self, header):
        header.add_header_line('##FORMAT=<ID=HET,Number=1,Type=Integer,Description="het count">')
        assert filter_variables(header, FilterType.SAMPLE)["HET"] is FieldType.INTEGER


class TestLiteralEvaluation:
    """Expressions over literals give the same answer for any record."""

    @pytest.mark.parametrize(
        "spec,expected",
        [
            ("1>2&1<3", False),
            ("1<2&1<3", True),
            ("(1+2)*3>8", True),
            ("1+2*3=7", True),
            ("10/4=2.5", True),
            ("2-1-1=0", True),
            ("8/2/2=2", True),
            ("!(1>2)", True),
            ("1>2|2>1", True),
            ("-1 < 0", True),
            ("'a' = 'a'", True),
            ("'a' < 'b'", True),
        ],
    )
    def test_evaluate(self, multiallelic_variant, spec, expected):
        assert VariantFilter(spec, FilterType.RECORD, {}).passes(multiallelic_variant) is expected

    def test_division_by_zero(self, trio_vcf):
        variant = trio_vcf.get_next_variant()
        with pytest.raises(FilterEvaluationError):
            record_filter(trio_vcf, "DP / 0 > 1").passes(variant)


class TestRecordFilters:
    """Record-scope filters over the trio sites."""

    def passing_positions(self, vcf, spec, **kwargs):
        variant_filter = record_filter(vcf, spec)
        return [v.position for v in vcf if variant_filter.passes(v, **kwargs)]

    def test_info_field(self, trio_vcf):
        assert self.passing_positions(trio_vcf, "DP > 50") == [100, 300, 400]

    def test_quality(self, trio_vcf):
        assert self.passing_positions(trio_vcf, "QUAL > 45") == [100, 300, 400]

    def test_flag(self, trio_vcf):
        assert self.passing_positions(trio_vcf, "DB") == [400]

    def test_negated_flag(self, trio_vcf):
        assert self.passing_positions(trio_vcf, "!DB") == [100, 200, 300, 150]

    def test_chrom(self, trio_vcf):
        assert self.passing_positions(trio_vcf, "CHROM = 'chr2'") == [150]

    def test_position(self, trio_vcf):
        assert self.passing_positions(trio_vcf, "POS > 150 & POS < 350") == [200, 300]

    def test_all_alleles_must_pass(self, trio_vcf):
        variants = list(trio_vcf)
        site = variants[2]
        assert site.alt == ["GA", "T"]
        variant_filter = record_filter(trio_vcf, "AF > 0.25")
        assert variant_filter.passes(site) is False
        assert variant_filter.passes(site, allele="T") is True
        assert variant_filter.passes(site, allele="GA") is False

    def test_alt_pseudo_variable(self, trio_vcf):
        site = list(trio_vcf)[2]
        variant_filter = record_filter(trio_vcf, "ALT = 'T'")
        assert variant_filter.passes(site) is False
        assert variant_filter.passes(site, allele="T") is True

    def test_sample_argument_ignored(self, trio_vcf):
        variant = trio_vcf.get_next_variant()
        assert record_filter(trio_vcf, "DP > 50").passes(variant, "CHILD") is True

    def test_non_numeric_value(self, header):
        from vcfstream.models import Variant

        variant = Variant.parse("chr1\t5\t.\tA\tG\t.\t.\tSYMBOL=BRCA1", header)
        variant_filter = VariantFilter("SYMBOL > 1", FilterType.RECORD, {"SYMBOL": FieldType.INTEGER})
        with pytest.raises(FieldConversionError):
            variant_filter.passes(variant)


class TestSampleFilters:
    """Sample-scope filters and genotype pseudo-variables."""

    def passing_samples(self, vcf, variant, spec):
        variant_filter = sample_filter(vcf, spec)
        return [name for name in vcf.sample_names if variant_filter.passes(variant, name)]

    def test_genotype_quality(self, trio_vcf):
        variant = trio_vcf.get_next_variant()
        assert self.passing_samples(trio_vcf, variant, "GQ > 20") == ["CHILD", "FATHER"]

    def test_genotype_string(self, trio_vcf):
        variant = trio_vcf.get_next_variant()
        assert self.passing_samples(trio_vcf, variant, "GT = '0/1'") == ["CHILD", "MOTHER"]

    def test_pseudo_variables(self, trio_vcf):
        first, second, third, fourth, _ = list(trio_vcf)
        assert self.passing_samples(trio_vcf, first, "HOM_REF") == ["FATHER"]
        assert self.passing_samples(trio_vcf, second, "NULL") == ["MOTHER"]
        assert self.passing_samples(trio_vcf, third, "HET") == ["CHILD", "FATHER", "MOTHER"]
        assert self.passing_samples(trio_vcf, fourth, "HOM_NONREF") == ["CHILD", "FATHER"]
        assert self.passing_samples(trio_vcf, fourth, "NONREF & !HOM") == ["MOTHER"]

    def test_absent_sample_uses_defaults(self, trio_vcf):
        variant = trio_vcf.get_next_variant()
        assert sample_filter(trio_vcf, "GQ > 20").passes(variant, "NOBODY") is False
        assert sample_filter(trio_vcf, "GQ < 20").passes(variant, "NOBODY") is True


class TestRemoveFilteredGenotypes:
    """Failing samples get a null genotype of the same shape."""

    def test_unphased(self, trio_vcf):
        variant = trio_vcf.get_next_variant()
        sample_filter(trio_vcf, "GQ > 20").remove_filtered_genotypes(variant)
        assert variant.samples["CHILD"]["GT"] == ["0/1"]
        assert variant.samples["FATHER"]["GT"] == ["0/0"]
        assert variant.samples["MOTHER"]["GT"] == ["./."]
        assert variant.samples["MOTHER"]["GQ"] == ["15"]

    def test_phased(self, trio_vcf):
        trio_vcf.get_next_variant()
        variant = trio_vcf.get_next_variant()
        sample_filter(trio_vcf, "GQ > 20").remove_filtered_genotypes(variant)
        assert variant.samples["CHILD"]["GT"] == [".|."]
        assert variant.samples["FATHER"]["GT"] == ["1|1"]
        assert variant.samples["MOTHER"]["GT"] == ["./."]

    def test_record_fields_untouched(self, trio_vcf):
        variant = trio_vcf.get_next_variant()
        before = (variant.alleles, dict(variant.info), variant.filter)
        sample_filter(trio_vcf, "GQ > 100").remove_filtered_genotypes(variant)
        assert (variant.alleles, dict(variant.info), variant.filter) == before
        assert all(variant.samples[name]["GT"] == ["./."] for name in trio_vcf.sample_names)


class TestMultiValuedFields:
    """Fields without a per-allele layout are read through their first value."""

    @pytest.fixture
    def variant(self, header):
        from vcfstream.models import Variant

        header.add_header_line('##INFO=<ID=DP4,Number=4,Type=Integer,Description="Strand depths">')
        header.add_header_line('##INFO=<ID=CNT,Number=.,Type=Integer,Description="Counts">')
        header.add_header_line('##FORMAT=<ID=HQ,Number=.,Type=Integer,Description="Haplotype quality">')
        line = (
            "chr1\t5\t.\tA\tG,T\t30\tPASS\tDP4=20,1,2,3;CNT=7,8\tGT:HQ\t"
            "0/1:40,10\t0/0:15,50\t1/1:."
        )
        return Variant.parse(line, header)

    def passes(self, variant, spec, filter_type=FilterType.RECORD, sample=""):
        variables = filter_variables(variant.header, filter_type)
        return VariantFilter(spec, filter_type, variables).passes(variant, sample)

    def test_fixed_count(self, variant):
        assert self.passes(variant, "DP4 > 10") is True
        assert self.passes(variant, "DP4 > 20") is False

    def test_variable_count(self, variant):
        assert self.passes(variant, "CNT > 5") is True
        assert self.passes(variant, "CNT = 7") is True
        assert self.passes(variant, "CNT > 7") is False

    def test_variable_count_per_sample(self, variant):
        assert self.passes(variant, "HQ > 20", FilterType.SAMPLE, "CHILD") is True
        assert self.passes(variant, "HQ > 20", FilterType.SAMPLE, "FATHER") is False
        assert self.passes(variant, "HQ > 20", FilterType.SAMPLE, "MOTHER") is False

    def test_direct_access_still_requires_index(self, variant):
        with pytest.raises(AmbiguousFieldAccessError):
            variant.get_info_value_float("DP4")
        assert variant.get_info_value_float("DP4", 3) == 3.0


class TestExponentLiterals:
    """Signed exponents stay inside the number token."""

    @pytest.mark.parametrize(
        "spec,value",
        [("AF < 1e-5", 1e-5), ("AF < 2.5E+3", 2500.0), ("AF < 1e5", 1e5), ("AF > -1e-2", -0.01)],
    )
    def test_tokenize(self, spec, value):
        tokens = tokenize_filter_spec(spec, VARIABLES)
        assert len(tokens) == 3
        assert tokens[-1].type is TokenType.NUMBER
        assert tokens[-1].number == value

    def test_subtraction_after_exponent(self):
        tokens = tokenize_filter_spec("1e2-1", VARIABLES)
        assert [t.value for t in tokens] == ["1e2", "-", "1"]

    def test_evaluate(self, multiallelic_variant):
        assert VariantFilter("1e-5 < 0.001", FilterType.RECORD, {}).passes(multiallelic_variant) is True
        assert VariantFilter("1e+2 = 100", FilterType.RECORD, {}).passes(multiallelic_variant) is True
