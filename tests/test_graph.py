"""Tests for the incremental build graph."""

import os

import pytest

from simpleos_builder.build.graph import BuildGraph, BuildResult, Target
from simpleos_builder.exceptions import (
    BuildActionInconsistencyError,
    DuplicateOutputError,
    GraphCycleError,
    MissingInputError,
    TargetFailedError,
    UnknownOutputError,
)


def write_action(content="data"):
    """Action writing ``content`` to every output and recording the call."""
    calls = []

    def action(target):
        calls.append(target.name)
        for output in target.outputs:
            output.write_text(content)

    action.calls = calls
    return action


def set_mtime(path, seconds):
    os.utime(path, (seconds, seconds))


@pytest.fixture
def chain(tmp_path):
    """source -> a.out -> b.out, with the source dated in the past."""
    source = tmp_path / "source.txt"
    source.write_text("source")
    set_mtime(source, 1_000_000)
    a_out = tmp_path / "stage" / "a.out"
    b_out = tmp_path / "stage" / "b.out"
    a_action = write_action("a")
    b_action = write_action("b")
    graph = BuildGraph(
        [
            Target("a", inputs=(source,), outputs=(a_out,), action=a_action),
            Target("b", inputs=(a_out,), outputs=(b_out,), action=b_action),
        ]
    )
    return graph, source, a_out, b_out, a_action, b_action


class TestTarget:
    """Tests for Target staleness."""

    def test_missing_output_is_stale(self, tmp_path):
        """Test a target with a missing output is stale."""
        target = Target("t", inputs=(), outputs=(tmp_path / "out",), action=write_action())

        assert target.is_stale()
        assert "missing" in target.staleness()

    def test_output_newer_than_input_is_fresh(self, tmp_path):
        """Test an output newer than every input is fresh."""
        source = tmp_path / "in"
        output = tmp_path / "out"
        source.write_text("x")
        output.write_text("y")
        set_mtime(source, 1000)
        set_mtime(output, 2000)

        target = Target("t", inputs=(source,), outputs=(output,), action=write_action())

        assert not target.is_stale()

    def test_equal_times_are_fresh(self, tmp_path):
        """Test an output with the same mtime as its newest input is fresh."""
        source = tmp_path / "in"
        output = tmp_path / "out"
        source.write_text("x")
        output.write_text("y")
        set_mtime(source, 1500)
        set_mtime(output, 1500)

        target = Target("t", inputs=(source,), outputs=(output,), action=write_action())

        assert not target.is_stale()

    def test_oldest_output_against_newest_input(self, tmp_path):
        """Test one old output among several makes the target stale."""
        first, second = tmp_path / "in1", tmp_path / "in2"
        out1, out2 = tmp_path / "out1", tmp_path / "out2"
        for path, stamp in ((first, 1000), (second, 3000), (out1, 4000), (out2, 2000)):
            path.write_text("x")
            set_mtime(path, stamp)

        target = Target("t", inputs=(first, second), outputs=(out1, out2), action=write_action())

        assert target.is_stale()
        assert str(second) in target.staleness()

    def test_requires_outputs(self, tmp_path):
        """Test a target must declare at least one output."""
        with pytest.raises(ValueError):
            Target("t", inputs=(tmp_path / "in",), outputs=(), action=write_action())

    def test_paths_are_normalized(self, tmp_path):
        """Test string paths become Path objects."""
        target = Target("t", inputs=[str(tmp_path / "in")], outputs=[str(tmp_path / "out")], action=write_action())

        assert target.inputs == (tmp_path / "in",)
        assert target.outputs == (tmp_path / "out",)


class TestGraphConstruction:
    """Tests for adding targets."""

    def test_duplicate_output_rejected(self, tmp_path):
        """Test two producers of one path are rejected."""
        graph = BuildGraph()
        graph.add(Target("first", inputs=(), outputs=(tmp_path / "out",), action=write_action()))

        with pytest.raises(DuplicateOutputError) as excinfo:
            graph.add(Target("second", inputs=(), outputs=(tmp_path / "out",), action=write_action()))

        assert excinfo.value.existing == "first"
        assert excinfo.value.duplicate == "second"
        assert "second" not in graph

    def test_duplicate_name_rejected(self, tmp_path):
        """Test target names are unique."""
        graph = BuildGraph()
        graph.add(Target("same", inputs=(), outputs=(tmp_path / "a",), action=write_action()))

        with pytest.raises(ValueError):
            graph.add(Target("same", inputs=(), outputs=(tmp_path / "b",), action=write_action()))

    def test_producer_lookup(self, chain):
        """Test outputs map back to their target."""
        graph, source, a_out, b_out, *_ = chain

        assert graph.producer_of(a_out).name == "a"
        assert graph.producer_of(source) is None
        assert [t.name for t in graph.dependencies(graph["b"])] == ["a"]
        assert len(graph) == 2


class TestPlan:
    """Tests for BuildGraph.plan()."""

    def test_topological_order(self, chain):
        """Test dependencies come before dependents."""
        graph, _, _, b_out, *_ = chain

        assert [t.name for t in graph.plan([b_out])] == ["a", "b"]

    def test_only_reachable_targets(self, chain):
        """Test unrelated targets are not planned."""
        graph, _, a_out, *_ = chain

        assert [t.name for t in graph.plan([a_out])] == ["a"]

    def test_unknown_output(self, chain, tmp_path):
        """Test requesting a file nobody produces."""
        graph = chain[0]

        with pytest.raises(UnknownOutputError):
            graph.plan([tmp_path / "nothing"])

    def test_cycle_detected(self, tmp_path):
        """Test a cycle is reported with its members."""
        x, y = tmp_path / "x", tmp_path / "y"
        graph = BuildGraph(
            [
                Target("make-x", inputs=(y,), outputs=(x,), action=write_action()),
                Target("make-y", inputs=(x,), outputs=(y,), action=write_action()),
            ]
        )

        with pytest.raises(GraphCycleError) as excinfo:
            graph.plan([x])

        assert excinfo.value.cycle == ["make-x", "make-y", "make-x"]

    def test_shared_dependency_planned_once(self, tmp_path):
        """Test a diamond visits the shared target once."""
        base = tmp_path / "base"
        left, right, top = tmp_path / "left", tmp_path / "right", tmp_path / "top"
        graph = BuildGraph(
            [
                Target("base", inputs=(), outputs=(base,), action=write_action()),
                Target("left", inputs=(base,), outputs=(left,), action=write_action()),
                Target("right", inputs=(base,), outputs=(right,), action=write_action()),
                Target("top", inputs=(left, right), outputs=(top,), action=write_action()),
            ]
        )

        assert [t.name for t in graph.plan([top])] == ["base", "left", "right", "top"]


class TestBuild:
    """Tests for BuildGraph.build()."""

    def test_first_build_runs_everything(self, chain):
        """Test missing outputs are built in order."""
        graph, _, a_out, b_out, a_action, b_action = chain

        result = graph.build([b_out])

        assert result.rebuilt == ["a", "b"]
        assert result.skipped == []
        assert a_out.read_text() == "a"
        assert b_out.read_text() == "b"

    def test_second_build_is_noop(self, chain):
        """Test nothing reruns when nothing changed."""
        graph, _, _, b_out, a_action, b_action = chain
        graph.build([b_out])

        result = graph.build([b_out])

        assert result.rebuilt == []
        assert result.skipped == ["a", "b"]
        assert result.up_to_date
        assert a_action.calls == ["a"]

    def test_staleness_propagates(self, chain):
        """Test touching the source reruns the whole chain."""
        graph, source, a_out, b_out, a_action, b_action = chain
        graph.build([b_out])
        set_mtime(a_out, 2_000_000)
        set_mtime(b_out, 2_000_000)
        set_mtime(source, 3_000_000)

        result = graph.build([b_out])

        assert result.rebuilt == ["a", "b"]

    def test_middle_change_reruns_downstream_only(self, chain):
        """Test touching an intermediate reruns only what depends on it."""
        graph, source, a_out, b_out, a_action, b_action = chain
        graph.build([b_out])
        set_mtime(b_out, 2_000_000)
        set_mtime(a_out, 2_500_000)

        result = graph.build([b_out])

        assert result.rebuilt == ["b"]
        assert result.skipped == ["a"]

    def test_missing_source_input(self, tmp_path):
        """Test a missing input without a rule aborts before running anything."""
        action = write_action()
        graph = BuildGraph(
            [Target("t", inputs=(tmp_path / "absent",), outputs=(tmp_path / "out",), action=action)]
        )

        with pytest.raises(MissingInputError) as excinfo:
            graph.build([tmp_path / "out"])

        assert excinfo.value.target == "t"
        assert action.calls == []

    def test_output_directories_created(self, tmp_path):
        """Test parent directories of outputs exist before the action runs."""
        output = tmp_path / "deep" / "nested" / "out"
        graph = BuildGraph([Target("t", inputs=(), outputs=(output,), action=write_action())])

        graph.build([output])

        assert output.read_text() == "data"

    def test_action_failure_aborts_pipeline(self, chain):
        """Test a failing action stops later targets and keeps earlier outputs."""
        graph, source, a_out, b_out, a_action, _ = chain
        error = RuntimeError("compiler exploded")

        def failing(target):
            raise error

        graph = BuildGraph(
            [
                graph["a"],
                Target("b", inputs=(a_out,), outputs=(b_out,), action=failing),
            ]
        )

        with pytest.raises(TargetFailedError) as excinfo:
            graph.build([b_out])

        assert excinfo.value.target == "b"
        assert excinfo.value.error is error
        assert a_out.exists()
        assert not b_out.exists()

    def test_action_not_producing_output(self, tmp_path):
        """Test an action that leaves its output missing is inconsistent."""
        graph = BuildGraph([Target("lazy", inputs=(), outputs=(tmp_path / "out",), action=lambda t: None)])

        with pytest.raises(BuildActionInconsistencyError) as excinfo:
            graph.build([tmp_path / "out"])

        assert excinfo.value.target == "lazy"

    def test_action_leaving_stale_output(self, tmp_path):
        """Test an action that writes an output older than its input is inconsistent."""
        source = tmp_path / "in"
        source.write_text("x")
        set_mtime(source, 5_000_000)
        output = tmp_path / "out"

        def backdated(target):
            output.write_text("y")
            set_mtime(output, 1_000_000)

        graph = BuildGraph([Target("t", inputs=(source,), outputs=(output,), action=backdated)])

        with pytest.raises(BuildActionInconsistencyError):
            graph.build([output])


class TestDryRun:
    """Tests for build(dry_run=True)."""

    def test_nothing_executed(self, chain):
        """Test a dry run reports without running actions."""
        graph, _, a_out, b_out, a_action, b_action = chain

        result = graph.build([b_out], dry_run=True)

        assert result.rebuilt == ["a", "b"]
        assert a_action.calls == []
        assert not a_out.exists()

    def test_upstream_staleness_propagates(self, chain):
        """Test a target downstream of a would-be rebuild is reported too."""
        graph, source, a_out, b_out, *_ = chain
        graph.build([b_out])
        set_mtime(a_out, 2_000_000)
        set_mtime(b_out, 2_000_000)
        set_mtime(source, 3_000_000)

        result = graph.build([b_out], dry_run=True)

        assert result.rebuilt == ["a", "b"]

    def test_up_to_date(self, chain):
        """Test a dry run after a build reports nothing."""
        graph, _, _, b_out, *_ = chain
        graph.build([b_out])

        assert graph.build([b_out], dry_run=True).rebuilt == []


class TestBuildResult:
    """Tests for BuildResult."""

    def test_up_to_date_flag(self):
        """Test up_to_date reflects rebuilt targets."""
        assert BuildResult().up_to_date
        assert not BuildResult(rebuilt=["a"]).up_to_date
