"""Tests for condition parsing, precedence, evaluation and interpolation."""

import itertools

import pytest

from matrixci import ConditionSyntaxError, JobConfiguration, UnknownAxisError, evaluate, parse_condition
from matrixci.conditions import And, AxisRef, Equals, Literal, Not, NotEquals, Or, interpolate


def cfg(primary=False, **axes):
    return JobConfiguration.from_mapping(axes, primary=primary)


UBUNTU_STABLE = cfg(os="ubuntu", toolchain="stable")
WINDOWS_NIGHTLY = cfg(os="windows", toolchain="nightly")


class TestParsing:
    def test_equality(self):
        assert parse_condition("matrix.os == 'ubuntu'") == Equals(AxisRef("os"), Literal("ubuntu"))

    def test_matrix_prefix_optional(self):
        assert parse_condition("os == 'ubuntu'") == parse_condition("matrix.os == 'ubuntu'")

    def test_double_quotes(self):
        assert parse_condition('os != "ubuntu"') == NotEquals(AxisRef("os"), Literal("ubuntu"))

    def test_and_binds_tighter_than_or(self):
        node = parse_condition("a == '1' && b == '2' || c == '3'")
        assert isinstance(node, Or)
        assert isinstance(node.left, And)

        node = parse_condition("a == '1' || b == '2' && c == '3'")
        assert isinstance(node, Or)
        assert isinstance(node.right, And)

    def test_parentheses_override_precedence(self):
        node = parse_condition("a == '1' && (b == '2' || c == '3')")
        assert isinstance(node, And)
        assert isinstance(node.right, Or)

    def test_negation(self):
        assert parse_condition("!primary") == Not(AxisRef("primary"))

    def test_wrapped_expression(self):
        assert parse_condition("${{ matrix.os == 'ubuntu' }}") == parse_condition("matrix.os == 'ubuntu'")

    def test_boolean_literals_unquoted(self):
        assert parse_condition("primary == true") == Equals(AxisRef("primary"), Literal("true", quoted=False))

    @pytest.mark.parametrize(
        "text",
        ["(matrix.os) == 'x'", "matrix.os == ('x')", "((os)) == 'x'", "(os) == ('x')"],
    )
    def test_parenthesised_operands_compare(self, text):
        assert parse_condition(text) == Equals(AxisRef("os"), Literal("x"))

    def test_parenthesised_operand_not_equals(self):
        assert parse_condition("(os) != 'x' && a == '1'") == And(
            NotEquals(AxisRef("os"), Literal("x")), Equals(AxisRef("a"), Literal("1"))
        )

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "os ==",
            "== 'x'",
            "os == 'x' &&",
            "(os == 'x'",
            "os == 'x')",
            "os = 'x'",
            "os == 'unterminated",
            "github.ref == 'main'",
            "(os == 'x') == 'true'",
            "os == ('x'",
        ],
    )
    def test_syntax_errors(self, text):
        with pytest.raises(ConditionSyntaxError):
            parse_condition(text)

    @pytest.mark.parametrize(
        "text",
        [
            "matrix.os == 'ubuntu'",
            "a == '1' && b == '2' || c == '3'",
            "a == '1' && (b == '2' || c == '3')",
            "!(os == 'x') && !primary",
            "!(a == '1' || b == '2')",
            "os != \"it's\"",
        ],
    )
    def test_rendered_text_reparses_to_same_tree(self, text):
        node = parse_condition(text)
        assert parse_condition(str(node)) == node


class TestEvaluation:
    def test_no_condition_always_runs(self):
        assert evaluate(None, WINDOWS_NIGHTLY) is True
        assert evaluate("   ", WINDOWS_NIGHTLY) is True

    def test_equals_and_not_equals(self):
        assert evaluate("toolchain == 'stable'", UBUNTU_STABLE) is True
        assert evaluate("toolchain == 'stable'", WINDOWS_NIGHTLY) is False
        assert evaluate("toolchain != 'stable'", WINDOWS_NIGHTLY) is True

    def test_conjunction(self):
        cond = "toolchain == 'stable' && os == 'ubuntu'"
        assert evaluate(cond, UBUNTU_STABLE) is True
        assert evaluate(cond, cfg(os="windows", toolchain="stable")) is False

    def test_precedence_matches_explicit_grouping(self):
        values = ["x", "y"]
        for a, b, c in itertools.product(values, repeat=3):
            config = cfg(a=a, b=b, c=c)
            plain = evaluate("a == 'x' && b == 'x' || c == 'x'", config)
            grouped = evaluate("(a == 'x' && b == 'x') || c == 'x'", config)
            assert plain == grouped == ((a == "x" and b == "x") or c == "x")

    def test_primary_derived_axis(self):
        assert evaluate("primary", cfg(primary=True, os="a")) is True
        assert evaluate("primary", cfg(primary=False, os="a")) is False
        assert evaluate("matrix.primary == 'true'", cfg(primary=True, os="a")) is True
        assert evaluate("!primary", cfg(primary=False, os="a")) is True

    def test_unknown_axis(self):
        with pytest.raises(UnknownAxisError) as exc:
            evaluate("arch == 'x86'", UBUNTU_STABLE)
        assert exc.value.axis == "arch"

    def test_unknown_axis_reported_even_when_short_circuited(self):
        with pytest.raises(UnknownAxisError):
            evaluate("os == 'windows' && arch == 'x86'", UBUNTU_STABLE)

    def test_deterministic(self):
        cond = "toolchain == 'stable' || os == 'windows'"
        results = {evaluate(cond, WINDOWS_NIGHTLY) for _ in range(10)}
        assert results == {True}


class TestInterpolation:
    def test_axis_placeholder(self):
        assert interpolate("rustup default ${{ matrix.toolchain }}", UBUNTU_STABLE) == "rustup default stable"

    def test_bare_axis_placeholder(self):
        assert interpolate("${{os}}-${{ toolchain }}", WINDOWS_NIGHTLY) == "windows-nightly"

    def test_expression_placeholder(self):
        assert interpolate("${{ os == 'ubuntu' }}", UBUNTU_STABLE) == "true"

    def test_text_without_placeholders_unchanged(self):
        assert interpolate("cargo test --verbose", UBUNTU_STABLE) == "cargo test --verbose"

    def test_unknown_axis_in_placeholder(self):
        with pytest.raises(UnknownAxisError):
            interpolate("${{ matrix.arch }}", UBUNTU_STABLE)
