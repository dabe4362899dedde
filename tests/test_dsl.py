"""Tests for dsl.py module."""

import pytest

from matrixci.dsl import JobBuilder, build, job, matrix, sh, uses, wf
from matrixci.model import SHELL_ACTION, TriggerRule


class TestStepHelpers:
    def test_sh(self):
        step = sh("Build", "make", cwd="src", id="b")
        assert step.action == SHELL_ACTION
        assert step.run == "make"
        assert step.cwd == "src"
        assert step.id == "b"

    def test_uses(self):
        step = uses("actions/checkout@v4", fetch_depth=0)
        assert step.name == "actions/checkout@v4"
        assert step.params == {"fetch_depth": 0}
        assert not step.is_shell


class TestJob:
    def test_requires_steps(self):
        with pytest.raises(ValueError):
            job("empty")

    def test_steps_list_then_varargs(self):
        j = job("x", sh("two", "2"), steps_list=[sh("one", "1")])
        assert [s.name for s in j.steps] == ["one", "two"]

    def test_matrix_object_and_dict(self):
        m = matrix("rust", ["stable", "nightly"]).axis("os", ["linux"])
        assert job("a", sh("a", "a"), matrix=m).matrix == {"rust": ["stable", "nightly"], "os": ["linux"]}
        assert job("b", sh("b", "b"), matrix={"rust": ("stable",)}).matrix == {"rust": ["stable"]}
        assert len(m) == 2

    def test_matrix_keyword_axes(self):
        assert matrix(rust=["stable"], os=["linux", "mac"]).axes == {"rust": ["stable"], "os": ["linux", "mac"]}


class TestJobBuilder:
    def test_build(self):
        template = (
            build("test")
            .titled("Test")
            .depends_on("build")
            .use_action("actions/checkout@v4")
            .define_step("Run", "cargo test")
            .with_env(RUST_BACKTRACE=1)
            .with_matrix("rust", ["stable", "nightly"])
            .build()
        )
        assert template.display_name == "Test"
        assert template.needs == ("build",)
        assert [s.action for s in template.steps] == ["actions/checkout@v4", SHELL_ACTION]
        assert template.env == {"RUST_BACKTRACE": "1"}
        assert template.matrix == {"rust": ["stable", "nightly"]}

    def test_no_matrix_when_no_axes(self):
        assert JobBuilder("a").define_step("a", "a").build().matrix is None

    def test_no_steps(self):
        with pytest.raises(ValueError):
            JobBuilder("a").build()


class TestWorkflow:
    def test_wf(self):
        spec = wf(job("a", sh("a", "a")), name="CI", on={"push": {"branches": ["main"]}})
        assert spec.name == "CI"
        assert spec.job_names == ["a"]
        assert spec.triggers == (TriggerRule("push", ("main",)),)
