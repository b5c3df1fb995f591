"""Tests for matrix expansion: cross-product order, excludes, includes, primary cell."""

import pytest

from matrixci import MalformedMatrixError, expand
from matrixci.dsl import axis, matrix
from matrixci.matrix import matrix_from_dict, matrix_to_dict
from matrixci.model import Axis, Matrix


def labels(m):
    return [c.label for c in expand(m)]


class TestCrossProduct:
    def test_two_axes_in_declaration_order(self):
        m = matrix(os=["ubuntu", "windows"], toolchain=["stable", "nightly"])
        assert labels(m) == [
            "(ubuntu, stable)",
            "(ubuntu, nightly)",
            "(windows, stable)",
            "(windows, nightly)",
        ]

    @pytest.mark.parametrize("sizes", [[1], [3], [2, 2], [3, 4], [2, 3, 2]])
    def test_count_is_product_of_axis_sizes(self, sizes):
        axes = [axis(f"a{i}", [f"v{j}" for j in range(n)]) for i, n in enumerate(sizes)]
        configs = list(expand(matrix(*axes)))
        expected = 1
        for n in sizes:
            expected *= n
        assert len(configs) == expected
        assert len({c.values for c in configs}) == expected
        for c in configs:
            assert list(c) == [a.name for a in axes]

    def test_expansion_is_restartable(self):
        exp = expand(matrix(os=["a", "b"], py=["1", "2"]))
        first = [c.values for c in exp]
        second = [c.values for c in exp]
        assert first == second
        assert len(exp) == 4

    def test_expansion_is_lazy(self):
        big = matrix(*[axis(f"a{i}", [str(v) for v in range(10)]) for i in range(7)])
        it = iter(expand(big))
        first = next(it)
        assert first.as_dict() == {f"a{i}": "0" for i in range(7)}

    def test_configurations_are_immutable(self):
        config = next(iter(expand(matrix(os=["a"]))))
        with pytest.raises(AttributeError):
            config.primary = True  # type: ignore[misc]

    def test_values_normalised_to_strings(self):
        config = next(iter(expand(Matrix(axes=(Axis("flag", (True,)), Axis("n", (3,)))))))
        assert config.as_dict() == {"flag": "true", "n": "3"}


class TestMalformed:
    def test_no_axes(self):
        with pytest.raises(MalformedMatrixError):
            expand(Matrix(axes=()))

    def test_empty_axis(self):
        with pytest.raises(MalformedMatrixError, match="no values"):
            expand(matrix(os=[]))

    def test_duplicate_axis(self):
        with pytest.raises(MalformedMatrixError, match="duplicate"):
            expand(matrix(axis("os", ["a"]), axis("os", ["b"])))

    def test_duplicate_axis_values(self):
        with pytest.raises(MalformedMatrixError, match="duplicate values"):
            expand(matrix(os=["ubuntu", "ubuntu"], rust=["stable"]))

    def test_duplicate_values_after_normalisation(self):
        with pytest.raises(MalformedMatrixError, match="duplicate values"):
            expand(Matrix(axes=(Axis("n", (1, "1")),)))

    def test_reserved_primary_name(self):
        with pytest.raises(MalformedMatrixError, match="reserved"):
            expand(Matrix(axes=(Axis("primary", ("x",)),)))

    def test_exclude_unknown_axis(self):
        with pytest.raises(MalformedMatrixError, match="undeclared"):
            expand(matrix(os=["a"], exclude=[{"arch": "x86"}]))

    def test_partial_include(self):
        with pytest.raises(MalformedMatrixError, match="does not assign"):
            expand(matrix(os=["a"], py=["1"], include=[{"os": "b"}]))

    def test_exclude_everything(self):
        with pytest.raises(MalformedMatrixError, match="every job"):
            expand(matrix(os=["a"], exclude=[{"os": "a"}]))

    def test_primary_matches_nothing(self):
        with pytest.raises(MalformedMatrixError, match="matches no job"):
            expand(matrix(os=["a", "b"], primary={"os": "c"}))


class TestExcludeInclude:
    def test_exclude_drops_matching_cells(self):
        m = matrix(
            os=["ubuntu", "windows"],
            toolchain=["stable", "nightly"],
            exclude=[{"os": "windows", "toolchain": "nightly"}],
        )
        assert labels(m) == ["(ubuntu, stable)", "(ubuntu, nightly)", "(windows, stable)"]

    def test_partial_exclude_drops_whole_slice(self):
        m = matrix(os=["ubuntu", "windows"], toolchain=["stable", "nightly"], exclude=[{"os": "windows"}])
        assert labels(m) == ["(ubuntu, stable)", "(ubuntu, nightly)"]

    def test_include_appends_new_cells_once(self):
        m = matrix(
            os=["ubuntu"],
            toolchain=["stable"],
            include=[
                {"os": "macos", "toolchain": "beta"},
                {"os": "ubuntu", "toolchain": "stable"},  # already present
                {"os": "macos", "toolchain": "beta"},  # duplicate include
            ],
        )
        assert labels(m) == ["(ubuntu, stable)", "(macos, beta)"]

    def test_include_can_restore_excluded_cell(self):
        m = matrix(
            os=["ubuntu", "windows"],
            exclude=[{"os": "windows"}],
            include=[{"os": "windows"}],
        )
        assert labels(m) == ["(ubuntu)", "(windows)"]


class TestPrimaryCell:
    def test_first_cell_is_primary_by_default(self):
        configs = list(expand(matrix(os=["a", "b"], py=["1", "2"])))
        assert [c.primary for c in configs] == [True, False, False, False]

    def test_explicit_primary(self):
        configs = list(expand(matrix(os=["a", "b"], py=["1", "2"], primary={"os": "b", "py": "1"})))
        assert [c.label for c in configs if c.primary] == ["(b, 1)"]

    def test_partial_primary_picks_first_match(self):
        configs = list(expand(matrix(os=["a", "b"], py=["1", "2"], primary={"py": "2"})))
        assert [c.label for c in configs if c.primary] == ["(a, 2)"]

    def test_primary_exposed_as_derived_axis(self):
        configs = list(expand(matrix(os=["a", "b"])))
        assert [c.lookup("primary") for c in configs] == ["true", "false"]
        assert "primary" not in configs[0].as_dict()
        assert configs[0].as_dict(include_derived=True)["primary"] == "true"


class TestDictShape:
    def test_from_dict(self):
        m = matrix_from_dict(
            {
                "os": ["ubuntu", "windows"],
                "rust": ["stable"],
                "exclude": [{"os": "windows"}],
                "primary": {"os": "ubuntu"},
            }
        )
        assert m.axis_names == ["os", "rust"]
        assert m.exclude == ({"os": "windows"},)
        assert m.primary == {"os": "ubuntu"}

    def test_axis_must_be_list(self):
        with pytest.raises(MalformedMatrixError, match="must be a list"):
            matrix_from_dict({"os": "ubuntu"})

    def test_dict_round_trip(self):
        data = {
            "os": ["ubuntu", "windows"],
            "rust": ["stable", "nightly"],
            "exclude": [{"os": "windows", "rust": "nightly"}],
            "include": [{"os": "macos", "rust": "stable"}],
            "primary": {"os": "ubuntu", "rust": "stable"},
        }
        m = matrix_from_dict(data)
        assert matrix_to_dict(m) == data
        assert labels(matrix_from_dict(matrix_to_dict(m))) == labels(m)
