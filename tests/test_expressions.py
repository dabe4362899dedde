"""Tests for expressions.py module."""

import pytest

from matrixci.errors import InvalidMatrixError
from matrixci.expressions import bind_matrix, bind_step_outputs


class TestBindMatrix:
    def test_substitutes_with_and_without_spaces(self):
        assert bind_matrix("cargo +${{ matrix.rust }} ${{matrix.rust}}", {"rust": "nightly"}) == "cargo +nightly nightly"

    def test_nested_structures(self):
        value = {"toolchain": "${{ matrix.rust }}", "list": ["${{ matrix.os }}", 3]}
        assert bind_matrix(value, {"rust": "stable", "os": "linux"}) == {
            "toolchain": "stable",
            "list": ["linux", 3],
        }

    def test_non_string_values_rendered(self):
        assert bind_matrix("py${{ matrix.v }}", {"v": 3.12}) == "py3.12"

    def test_booleans_render_lowercase(self):
        assert bind_matrix("--release=${{ matrix.release }}", {"release": True}) == "--release=true"
        assert bind_matrix("${{ matrix.release }}", {"release": False}) == "false"

    def test_other_expressions_untouched(self):
        text = "cargo +${{steps.toolchain.outputs.name}} ${{ github.sha }}"
        assert bind_matrix(text, {"rust": "stable"}) == text

    def test_unknown_axis(self):
        with pytest.raises(InvalidMatrixError):
            bind_matrix("${{ matrix.nope }}", {"rust": "stable"}, job="build")


class TestBindStepOutputs:
    def test_known_output(self):
        outputs = {"toolchain": {"name": "1.80.0"}}
        assert bind_step_outputs("cargo +${{steps.toolchain.outputs.name}} test", outputs) == "cargo +1.80.0 test"

    def test_unknown_output_is_empty(self):
        assert bind_step_outputs("x${{ steps.missing.outputs.name }}y", {}) == "xy"

    def test_matrix_refs_untouched(self):
        assert bind_step_outputs("${{ matrix.rust }}", {}) == "${{ matrix.rust }}"
