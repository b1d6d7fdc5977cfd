"""Incremental, modification-time driven build graph.

Targets declare the files they read and the files they write. A target is
stale when one of its outputs is missing or older than its newest input; the
engine walks the targets needed for a request in dependency order and runs
only the stale ones.

Execution is strictly sequential. A failing action aborts the rest of the
pipeline and leaves every file produced so far in place, so the next run can
reuse whatever is still fresh.

Example:
    >>> graph = BuildGraph()
    >>> graph.add(Target("copy", inputs=(src,), outputs=(dst,), action=copy_action))
    >>> result = graph.build([dst])
    >>> result.rebuilt
    ['copy']
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from simpleos_builder.exceptions import (
    BuildActionInconsistencyError,
    DuplicateOutputError,
    GraphCycleError,
    MissingInputError,
    TargetFailedError,
    UnknownOutputError,
)
from simpleos_builder.logging import LoggerFactory, operation_context


log = LoggerFactory.for_graph()


@dataclass(frozen=True)
class Target:
    """A named build step."""

    name: str
    inputs: tuple[Path, ...]
    outputs: tuple[Path, ...]
    action: Callable[["Target"], None] = field(compare=False, repr=False)
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(Path(p) for p in self.inputs))
        object.__setattr__(self, "outputs", tuple(Path(p) for p in self.outputs))
        if not self.outputs:
            raise ValueError(f"Target {self.name!r} declares no outputs")

    def staleness(self) -> Optional[str]:
        """Return why the target must run, or None when it is up to date."""
        output_times = []
        for output in self.outputs:
            mtime = _mtime_ns(output)
            if mtime is None:
                return f"output {output} is missing"
            output_times.append(mtime)

        input_times = [t for t in (_mtime_ns(p) for p in self.inputs) if t is not None]
        if not input_times:
            return None

        oldest_output = min(output_times)
        newest_input = max(input_times)
        if oldest_output < newest_input:
            newest = max(self.inputs, key=lambda p: _mtime_ns(p) or 0)
            return f"input {newest} is newer than its outputs"
        return None

    def is_stale(self) -> bool:
        return self.staleness() is not None

    def check_outputs(self) -> None:
        """Verify the action left every output fresh.

        Raises:
            BuildActionInconsistencyError: If an output is missing or older
                than one of the inputs.
        """
        for output in self.outputs:
            if _mtime_ns(output) is None:
                raise BuildActionInconsistencyError(self.name, f"output {output} was not created")
        reason = self.staleness()
        if reason is not None:
            raise BuildActionInconsistencyError(self.name, reason)


@dataclass
class BuildResult:
    """Names of the targets that ran and the ones found up to date."""

    rebuilt: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return not self.rebuilt


class BuildGraph:
    """Directed acyclic graph of targets keyed by output path."""

    def __init__(self, targets: Iterable[Target] = ()):
        self._targets: dict[str, Target] = {}
        self._producers: dict[Path, Target] = {}
        for target in targets:
            self.add(target)

    def __contains__(self, name: str) -> bool:
        return name in self._targets

    def __getitem__(self, name: str) -> Target:
        return self._targets[name]

    def __iter__(self):
        return iter(self._targets.values())

    def __len__(self) -> int:
        return len(self._targets)

    def add(self, target: Target) -> Target:
        """Register a target.

        Raises:
            DuplicateOutputError: If another target already writes one of its outputs.
            ValueError: If a target with the same name is already registered.
        """
        if target.name in self._targets:
            raise ValueError(f"Duplicate target name: {target.name}")
        for output in target.outputs:
            existing = self._producers.get(_key(output))
            if existing is not None:
                raise DuplicateOutputError(output, existing.name, target.name)
        self._targets[target.name] = target
        for output in target.outputs:
            self._producers[_key(output)] = target
        return target

    def producer_of(self, path: Path) -> Optional[Target]:
        return self._producers.get(_key(path))

    def dependencies(self, target: Target) -> list[Target]:
        """Targets producing the inputs of ``target``, in input order."""
        deps: list[Target] = []
        for path in target.inputs:
            producer = self.producer_of(path)
            if producer is not None and producer not in deps:
                deps.append(producer)
        return deps

    def plan(self, requested_outputs: Iterable[Path]) -> list[Target]:
        """Topologically order every target needed for the requested outputs.

        Raises:
            UnknownOutputError: If a requested output has no producer.
            GraphCycleError: If the reachable targets form a cycle.
        """
        order: list[Target] = []
        done: set[str] = set()
        visiting: list[str] = []

        def visit(target: Target) -> None:
            if target.name in done:
                return
            if target.name in visiting:
                cycle = visiting[visiting.index(target.name):] + [target.name]
                raise GraphCycleError(cycle)
            visiting.append(target.name)
            for dependency in self.dependencies(target):
                visit(dependency)
            visiting.pop()
            done.add(target.name)
            order.append(target)

        for output in requested_outputs:
            producer = self.producer_of(Path(output))
            if producer is None:
                raise UnknownOutputError(Path(output))
            visit(producer)
        return order

    def build(self, requested_outputs: Iterable[Path], *, dry_run: bool = False) -> BuildResult:
        """Bring the requested outputs up to date.

        With ``dry_run`` nothing is executed; a target is reported as rebuilt
        when it is stale itself or depends on a target that would run.

        Raises:
            MissingInputError: If an input has neither a file nor a producer.
            TargetFailedError: If an action raises; the original error is
                available as ``error.error``.
            BuildActionInconsistencyError: If an action leaves stale outputs.
        """
        result = BuildResult()
        for target in self.plan(requested_outputs):
            for path in target.inputs:
                if self.producer_of(path) is None and not path.exists():
                    raise MissingInputError(target.name, path)

            if dry_run:
                reason = target.staleness()
                if reason is None and any(
                    dep.name in result.rebuilt for dep in self.dependencies(target)
                ):
                    reason = "an upstream target would be rebuilt"
                if reason is None:
                    result.skipped.append(target.name)
                else:
                    log.info(f"Would rebuild {target.name}: {reason}")
                    result.rebuilt.append(target.name)
                continue

            reason = target.staleness()
            if reason is None:
                log.debug(f"{target.name} is up to date")
                result.skipped.append(target.name)
                continue

            log.debug(f"{target.name} is stale: {reason}")
            self._execute(target)
            result.rebuilt.append(target.name)

        if result.rebuilt:
            log.info(f"Rebuilt {len(result.rebuilt)} target(s): {', '.join(result.rebuilt)}")
        else:
            log.info("Everything is up to date")
        return result

    def _execute(self, target: Target) -> None:
        for output in target.outputs:
            output.parent.mkdir(parents=True, exist_ok=True)
        try:
            with operation_context(target.name, description=target.description):
                target.action(target)
        except Exception as error:
            raise TargetFailedError(target.name, error) from error
        target.check_outputs()


def _key(path: Path) -> Path:
    return Path(path).absolute()


def _mtime_ns(path: Path) -> Optional[int]:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None
