"""Filter expressions over VCF records and samples.

A filter spec is an infix expression such as ``DP > 10 & AF < 0.5`` or
``!(GQ < 20) | HOM_REF``. It is tokenized against a table of variable types,
converted to postfix order with the shunting-yard algorithm and evaluated
with a value stack once per record (or per sample) and alternate allele.

Operators are single characters:

| Operator      | Meaning          | Priority |
|---------------|------------------|----------|
| ``*`` ``/``   | multiply, divide | 8        |
| ``+`` ``-``   | add, subtract    | 7        |
| ``!``         | logical not      | 6        |
| ``=`` ``>`` ``<`` | comparison   | 5        |
| ``&``         | logical and      | 4        |
| ``|``         | logical or       | 3        |
"""

import logging
import operator
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .errors import (
    FilterError,
    FilterEvaluationError,
    FilterSyntaxError,
    FilterTypeError,
    UnboundVariableError,
)
from .genotype import (
    decompose_genotype,
    has_non_ref,
    is_het,
    is_hom,
    is_hom_non_ref,
    is_hom_ref,
    is_null,
    null_genotype,
)
from .header import FieldType, VCFHeader
from .models import ALLELE_NUMBER, GENOTYPE_NUMBER, Variant

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r"^-?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")
EXPONENT_PREFIX = re.compile(r"^-?(\d+\.?\d*|\.\d+)[eE]$")
QUOTE_CHARS = ('"', "'")


class TokenType(Enum):
    NUMBER = "number"
    STRING = "string"
    BOOLEAN_VARIABLE = "boolean variable"
    NUMERIC_VARIABLE = "numeric variable"
    STRING_VARIABLE = "string variable"
    AND_OPERATOR = "&"
    OR_OPERATOR = "|"
    ADD_OPERATOR = "+"
    SUBTRACT_OPERATOR = "-"
    MULTIPLY_OPERATOR = "*"
    DIVIDE_OPERATOR = "/"
    NOT_OPERATOR = "!"
    EQUAL_OPERATOR = "="
    GREATER_THAN_OPERATOR = ">"
    LESS_THAN_OPERATOR = "<"
    LEFT_PARENTHESIS = "("
    RIGHT_PARENTHESIS = ")"


OPERATOR_CHARS = {
    "!": TokenType.NOT_OPERATOR,
    "&": TokenType.AND_OPERATOR,
    "|": TokenType.OR_OPERATOR,
    "=": TokenType.EQUAL_OPERATOR,
    ">": TokenType.GREATER_THAN_OPERATOR,
    "<": TokenType.LESS_THAN_OPERATOR,
    "*": TokenType.MULTIPLY_OPERATOR,
    "/": TokenType.DIVIDE_OPERATOR,
    "+": TokenType.ADD_OPERATOR,
    "-": TokenType.SUBTRACT_OPERATOR,
}

PARENTHESIS_CHARS = {
    "(": TokenType.LEFT_PARENTHESIS,
    ")": TokenType.RIGHT_PARENTHESIS,
}

PRIORITY = {
    TokenType.MULTIPLY_OPERATOR: 8,
    TokenType.DIVIDE_OPERATOR: 8,
    TokenType.ADD_OPERATOR: 7,
    TokenType.SUBTRACT_OPERATOR: 7,
    TokenType.NOT_OPERATOR: 6,
    TokenType.EQUAL_OPERATOR: 5,
    TokenType.GREATER_THAN_OPERATOR: 5,
    TokenType.LESS_THAN_OPERATOR: 5,
    TokenType.AND_OPERATOR: 4,
    TokenType.OR_OPERATOR: 3,
    TokenType.LEFT_PARENTHESIS: 0,
    TokenType.RIGHT_PARENTHESIS: 0,
}

OPERAND_TYPES = {
    TokenType.NUMBER,
    TokenType.STRING,
    TokenType.BOOLEAN_VARIABLE,
    TokenType.NUMERIC_VARIABLE,
    TokenType.STRING_VARIABLE,
}

VARIABLE_TYPES = {
    FieldType.FLOAT: TokenType.NUMERIC_VARIABLE,
    FieldType.INTEGER: TokenType.NUMERIC_VARIABLE,
    FieldType.BOOL: TokenType.BOOLEAN_VARIABLE,
    FieldType.STRING: TokenType.STRING_VARIABLE,
}

ARITHMETIC_OPERATORS = {
    TokenType.ADD_OPERATOR,
    TokenType.SUBTRACT_OPERATOR,
    TokenType.MULTIPLY_OPERATOR,
    TokenType.DIVIDE_OPERATOR,
}

COMPARISON_OPERATORS = {
    TokenType.EQUAL_OPERATOR,
    TokenType.GREATER_THAN_OPERATOR,
    TokenType.LESS_THAN_OPERATOR,
}


@dataclass(frozen=True)
class RuleToken:
    """One token of a filter spec."""

    type: TokenType
    value: str
    number: float = 0.0

    @property
    def is_operand(self) -> bool:
        return self.type in OPERAND_TYPES

    @property
    def is_variable(self) -> bool:
        return self.type in (
            TokenType.BOOLEAN_VARIABLE,
            TokenType.NUMERIC_VARIABLE,
            TokenType.STRING_VARIABLE,
        )

    @property
    def is_operator(self) -> bool:
        return self.type in PRIORITY and not self.is_parenthesis

    @property
    def is_parenthesis(self) -> bool:
        return self.type in (TokenType.LEFT_PARENTHESIS, TokenType.RIGHT_PARENTHESIS)

    @property
    def priority(self) -> int:
        return PRIORITY[self.type]

    @property
    def is_right_associative(self) -> bool:
        return self.type in (TokenType.NOT_OPERATOR, TokenType.LEFT_PARENTHESIS)

    @property
    def is_left_associative(self) -> bool:
        return not self.is_right_associative


class FilterType(Enum):
    """Scope a filter's variables are resolved in."""

    SAMPLE = "sample"
    RECORD = "record"


def _operand_token(text: str, variables: dict[str, FieldType]) -> RuleToken:
    if text in variables:
        token_type = VARIABLE_TYPES.get(variables[text])
        if token_type is None:
            raise FilterTypeError(f"Variable '{text}' has unknown type and cannot be used in a filter")
        return RuleToken(token_type, text)
    if NUMBER_PATTERN.match(text):
        return RuleToken(TokenType.NUMBER, text, float(text))
    if re.match(r"^[A-Za-z_][\w.]*$", text):
        raise UnboundVariableError(f"Unknown variable '{text}'")
    raise FilterSyntaxError(f"Unrecognized token '{text}'")


def tokenize_filter_spec(spec: str, variables: dict[str, FieldType]) -> list[RuleToken]:
    """Split a filter spec into tokens, binding variable types.

    Args:
        spec: Infix filter expression
        variables: Variable name to field type table

    Returns:
        Tokens in infix order

    Raises:
        FilterSyntaxError: On unrecognized tokens or unterminated quotes
        UnboundVariableError: On names missing from the variable table
        FilterTypeError: On variables of unknown type
    """
    tokens: list[RuleToken] = []
    current = ""

    def flush() -> None:
        nonlocal current
        if current:
            tokens.append(_operand_token(current, variables))
            current = ""

    i = 0
    while i < len(spec):
        char = spec[i]
        if char.isspace():
            flush()
        elif char in QUOTE_CHARS:
            flush()
            end = spec.find(char, i + 1)
            if end == -1:
                raise FilterSyntaxError(f"Unterminated string literal at position {i}")
            tokens.append(RuleToken(TokenType.STRING, spec[i + 1:end]))
            i = end
        elif char in OPERATOR_CHARS or char in PARENTHESIS_CHARS:
            next_char = spec[i + 1] if i + 1 < len(spec) else ""
            starts_operand = not current and (
                not tokens or tokens[-1].is_operator or tokens[-1].type is TokenType.LEFT_PARENTHESIS
            )
            if char == "-" and starts_operand and (next_char.isdigit() or next_char == "."):
                current = char
            elif char in "+-" and EXPONENT_PREFIX.match(current) and next_char.isdigit():
                current += char
            else:
                flush()
                token_type = OPERATOR_CHARS.get(char) or PARENTHESIS_CHARS[char]
                tokens.append(RuleToken(token_type, char))
        else:
            current += char
        i += 1
    flush()

    if not tokens:
        raise FilterSyntaxError("Empty filter expression")
    return tokens


def to_postfix(tokens: list[RuleToken]) -> list[RuleToken]:
    """Convert infix tokens to postfix order (shunting-yard).

    Raises:
        FilterSyntaxError: On unbalanced parentheses
    """
    output: list[RuleToken] = []
    operators: list[RuleToken] = []

    for token in tokens:
        if token.is_operand:
            output.append(token)
        elif token.type is TokenType.LEFT_PARENTHESIS:
            operators.append(token)
        elif token.type is TokenType.RIGHT_PARENTHESIS:
            while operators and operators[-1].type is not TokenType.LEFT_PARENTHESIS:
                output.append(operators.pop())
            if not operators:
                raise FilterSyntaxError("Unbalanced parentheses: unmatched ')'")
            operators.pop()
        else:
            while operators and operators[-1].type is not TokenType.LEFT_PARENTHESIS:
                top = operators[-1]
                if top.priority > token.priority or (
                    top.priority == token.priority and token.is_left_associative
                ):
                    output.append(operators.pop())
                else:
                    break
            operators.append(token)

    while operators:
        token = operators.pop()
        if token.type is TokenType.LEFT_PARENTHESIS:
            raise FilterSyntaxError("Unbalanced parentheses: unmatched '('")
        output.append(token)

    return output


def _static_type(token: RuleToken) -> type:
    if token.type in (TokenType.NUMBER, TokenType.NUMERIC_VARIABLE):
        return float
    if token.type in (TokenType.STRING, TokenType.STRING_VARIABLE):
        return str
    return bool


def _result_type(operator: RuleToken, left: type, right: type) -> type:
    if operator.type in ARITHMETIC_OPERATORS:
        if left is not float or right is not float:
            raise FilterTypeError(f"Operator '{operator.value}' requires numeric operands")
        return float
    if operator.type in COMPARISON_OPERATORS:
        if left is not right:
            raise FilterTypeError(
                f"Operator '{operator.value}' compares {left.__name__} with {right.__name__}"
            )
        if left is bool and operator.type is not TokenType.EQUAL_OPERATOR:
            raise FilterTypeError(f"Operator '{operator.value}' cannot order boolean operands")
        return bool
    if left is not bool or right is not bool:
        raise FilterTypeError(f"Operator '{operator.value}' requires boolean operands")
    return bool


def check_postfix(rules: list[RuleToken]) -> None:
    """Verify arity and operand types of a postfix sequence.

    Raises:
        FilterSyntaxError: On missing operands or dangling values
        FilterTypeError: On type-mismatched operator application
    """
    stack: list[type] = []
    for token in rules:
        if token.is_operand:
            stack.append(_static_type(token))
        elif token.type is TokenType.NOT_OPERATOR:
            if not stack:
                raise FilterSyntaxError("Missing operand for '!'")
            if stack[-1] is not bool:
                raise FilterTypeError("Operator '!' requires a boolean operand")
        else:
            if len(stack) < 2:
                raise FilterSyntaxError(f"Missing operand for '{token.value}'")
            right = stack.pop()
            left = stack.pop()
            stack.append(_result_type(token, left, right))

    if len(stack) != 1:
        raise FilterSyntaxError("Filter expression has dangling operands")
    if stack[0] is not bool:
        raise FilterTypeError("Filter expression must evaluate to a boolean")


BINARY_OPERATIONS = {
    TokenType.ADD_OPERATOR: operator.add,
    TokenType.SUBTRACT_OPERATOR: operator.sub,
    TokenType.MULTIPLY_OPERATOR: operator.mul,
    TokenType.DIVIDE_OPERATOR: operator.truediv,
    TokenType.EQUAL_OPERATOR: operator.eq,
    TokenType.GREATER_THAN_OPERATOR: operator.gt,
    TokenType.LESS_THAN_OPERATOR: operator.lt,
    TokenType.AND_OPERATOR: operator.and_,
    TokenType.OR_OPERATOR: operator.or_,
}


def _apply(token: RuleToken, left, right):
    """Apply a binary operator to two resolved values."""
    _result_type(token, type(left), type(right))
    if token.type is TokenType.DIVIDE_OPERATOR and right == 0:
        raise FilterEvaluationError("Division by zero in filter expression")
    return BINARY_OPERATIONS[token.type](left, right)


def _genotype_test(test: Callable[[dict[int, int]], bool]) -> Callable[[Variant, str, str | None], bool]:
    def resolve(variant: Variant, sample: str, allele: str | None) -> bool:
        return test(decompose_genotype(variant.get_sample_value_string("GT", sample)))

    return resolve


RECORD_PSEUDO_VARIABLES: dict[str, tuple[FieldType, Callable[[Variant, str, str | None], object]]] = {
    "QUAL": (FieldType.FLOAT, lambda v, s, a: v.quality if v.quality is not None else 0.0),
    "POS": (FieldType.INTEGER, lambda v, s, a: float(v.position)),
    "CHROM": (FieldType.STRING, lambda v, s, a: v.sequence_name),
    "ID": (FieldType.STRING, lambda v, s, a: v.id),
    "REF": (FieldType.STRING, lambda v, s, a: v.ref),
    "ALT": (FieldType.STRING, lambda v, s, a: a or ""),
    "FILTER": (FieldType.STRING, lambda v, s, a: v.filter),
}

SAMPLE_PSEUDO_VARIABLES: dict[str, tuple[FieldType, Callable[[Variant, str, str | None], object]]] = {
    "HET": (FieldType.BOOL, _genotype_test(is_het)),
    "HOM": (FieldType.BOOL, _genotype_test(is_hom)),
    "HOM_REF": (FieldType.BOOL, _genotype_test(is_hom_ref)),
    "HOM_NONREF": (FieldType.BOOL, _genotype_test(is_hom_non_ref)),
    "NONREF": (FieldType.BOOL, _genotype_test(has_non_ref)),
    "NULL": (FieldType.BOOL, _genotype_test(is_null)),
}


def filter_variables(header: VCFHeader, filter_type: "FilterType") -> dict[str, FieldType]:
    """Variable type table for a filter scope; declared fields shadow pseudo-variables."""
    if filter_type is FilterType.RECORD:
        pseudo, declared = RECORD_PSEUDO_VARIABLES, header.info_types()
    else:
        pseudo, declared = SAMPLE_PSEUDO_VARIABLES, header.format_types()
    variables = {name: field_type for name, (field_type, _resolver) in pseudo.items()}
    variables.update(declared)
    return variables


class VariantFilter:
    """Compiled filter spec evaluated against records or samples.

    Construction tokenizes, converts to postfix and type-checks the spec, so
    a malformed spec fails here with a FilterError rather than per record.
    """

    def __init__(
        self,
        spec: str,
        filter_type: FilterType,
        variables: dict[str, FieldType],
    ):
        self.spec = spec
        self.type = filter_type
        self.variables = dict(variables)
        self.tokens = tokenize_filter_spec(spec, self.variables)
        self.rules = to_postfix(self.tokens)
        check_postfix(self.rules)
        logger.debug("Compiled %s filter '%s'", filter_type.value, spec)

    @classmethod
    def validate(cls, spec: str, variables: dict[str, FieldType]) -> list[str]:
        """Return error messages for a spec instead of raising."""
        try:
            cls(spec, FilterType.RECORD, variables)
        except FilterError as e:
            return [str(e)]
        return []

    def _pseudo_variables(self) -> dict:
        if self.type is FilterType.RECORD:
            return RECORD_PSEUDO_VARIABLES
        return SAMPLE_PSEUDO_VARIABLES

    def _declared(self, variant: Variant, name: str) -> bool:
        if self.type is FilterType.RECORD:
            return name in variant.header.info_fields
        return name in variant.header.format_fields

    def _resolve(self, token: RuleToken, variant: Variant, sample: str, allele: str | None):
        if token.type is TokenType.NUMBER:
            return token.number
        if token.type is TokenType.STRING:
            return token.value

        name = token.value
        pseudo = self._pseudo_variables().get(name)
        if pseudo is not None and not self._declared(variant, name):
            return pseudo[1](variant, sample, allele)

        if self.type is FilterType.RECORD:
            if token.type is TokenType.NUMERIC_VARIABLE:
                return variant.get_info_value_float(name, ALLELE_NUMBER, allele)
            if token.type is TokenType.BOOLEAN_VARIABLE:
                return variant.get_info_value_bool(name)
            return variant.get_info_value_string(name, ALLELE_NUMBER, allele)

        if token.type is TokenType.NUMERIC_VARIABLE:
            return variant.get_sample_value_float(name, sample, GENOTYPE_NUMBER, allele)
        if token.type is TokenType.BOOLEAN_VARIABLE:
            return variant.get_sample_value_bool(name, sample)
        return variant.get_sample_value_string(name, sample, GENOTYPE_NUMBER, allele)

    def _evaluate(self, variant: Variant, sample: str, allele: str | None) -> bool:
        stack = []
        for token in self.rules:
            if token.is_operand:
                stack.append(self._resolve(token, variant, sample, allele))
            elif token.type is TokenType.NOT_OPERATOR:
                value = stack.pop()
                if type(value) is not bool:
                    raise FilterTypeError("Operator '!' requires a boolean operand")
                stack.append(not value)
            else:
                right = stack.pop()
                left = stack.pop()
                stack.append(_apply(token, left, right))

        result = stack.pop()
        if type(result) is not bool:
            raise FilterTypeError("Filter expression must evaluate to a boolean")
        return result

    def passes(self, variant: Variant, sample: str = "", allele: str | None = None) -> bool:
        """Evaluate the filter.

        Args:
            variant: Record to test
            sample: Sample name; ignored by RECORD filters
            allele: Evaluate exactly this alternate allele. When omitted every
                alternate allele must pass.

        Raises:
            FilterTypeError: If a resolved value has the wrong type
            FilterEvaluationError: On division by zero
            FieldConversionError: If a field value is not numeric
        """
        if self.type is FilterType.RECORD:
            sample = ""
        if allele is not None:
            return self._evaluate(variant, sample, allele)
        if not variant.alt:
            return self._evaluate(variant, sample, None)
        return all(self._evaluate(variant, sample, alt) for alt in variant.alt)

    def remove_filtered_genotypes(self, variant: Variant) -> None:
        """Null the GT of every sample that fails, keeping its ploidy."""
        for name in variant.sample_names:
            sample_data = variant.samples.get(name)
            if sample_data is None or "GT" not in sample_data:
                continue
            if not self.passes(variant, name):
                sample_data["GT"] = [null_genotype(",".join(sample_data["GT"]))]
