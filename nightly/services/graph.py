"""Dependency-graph scheduler for pipeline tasks.

Tasks run on a thread pool as soon as everything they wait on has finished.
Completion is observed with ``concurrent.futures.wait``; nothing polls or
sleeps. Two kinds of edges exist:

- ``requires``: the dependency must succeed, and its value is passed in.
  Otherwise the task is skipped, or failed when it is a barrier.
- ``after``: ordering only; the dependency may have failed.

A failing task never cancels unrelated tasks. A task that raises is
recorded as failed with its ``failure_kind``, like one returning ``Err``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Literal

from nightly.core.result import Err, Ok, Result
from nightly.output.console import ConsoleProtocol
from nightly.services.errors import PipelineError, PipelineErrorKind

TaskStatus = Literal["succeeded", "failed", "skipped"]
TaskFn = Callable[[Mapping[str, object]], Result[object, PipelineError]]


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    run: TaskFn
    requires: tuple[str, ...] = ()
    after: tuple[str, ...] = ()
    barrier: bool = False
    # Error kind recorded when run raises instead of returning Err.
    failure_kind: PipelineErrorKind = "build_failure"

    @property
    def waits_on(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys((*self.requires, *self.after)))


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    task_id: str
    status: TaskStatus
    value: object = None
    error: PipelineError | None = None
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


def validate_graph(tasks: Sequence[Task]) -> Result[None, PipelineError]:
    """Reject duplicate ids, unknown dependencies and cycles."""
    ids = [t.id for t in tasks]
    seen: set[str] = set()
    for task_id in ids:
        if task_id in seen:
            return Err(PipelineError(kind="invalid_graph", message=f"duplicate task: {task_id}"))
        seen.add(task_id)

    for task in tasks:
        unknown = [d for d in task.waits_on if d not in seen]
        if unknown:
            return Err(
                PipelineError(
                    kind="invalid_graph",
                    message=f"{task.id} depends on unknown task(s): {', '.join(unknown)}",
                )
            )

    sorter = TopologicalSorter({t.id: t.waits_on for t in tasks})
    try:
        sorter.prepare()
    except CycleError as e:
        cycle = " -> ".join(str(n) for n in e.args[1])
        return Err(PipelineError(kind="invalid_graph", message=f"dependency cycle: {cycle}"))
    return Ok(None)


def _blocked(task: Task, unmet: list[str]) -> TaskOutcome:
    reason = f"unmet requirement(s): {', '.join(unmet)}"
    if task.barrier:
        return TaskOutcome(
            task_id=task.id,
            status="failed",
            error=PipelineError(
                kind="merge_barrier_failure",
                message=f"{task.id} cannot run without {', '.join(unmet)}",
                stage=task.id,
            ),
            reason=reason,
        )
    return TaskOutcome(task_id=task.id, status="skipped", reason=reason)


def _report(outcome: TaskOutcome, console: ConsoleProtocol) -> None:
    match outcome.status:
        case "succeeded":
            console.success(outcome.task_id)
        case "skipped":
            console.warning(f"{outcome.task_id} skipped ({outcome.reason})")
        case "failed":
            detail = outcome.error.pretty() if outcome.error else outcome.reason
            console.error(f"{outcome.task_id}: {detail}")


def run_graph(
    tasks: Sequence[Task],
    *,
    console: ConsoleProtocol,
    max_workers: int | None = None,
) -> dict[str, TaskOutcome]:
    """Run every task respecting its edges; return outcomes in declaration order.

    Raises:
        ValueError: if the graph is malformed (see ``validate_graph``).
    """
    valid = validate_graph(tasks)
    if isinstance(valid, Err):
        raise ValueError(valid.error.message)

    pending: dict[str, Task] = {t.id: t for t in tasks}
    outcomes: dict[str, TaskOutcome] = {}
    running: dict[Future[Result[object, PipelineError]], str] = {}
    failure_kinds = {t.id: t.failure_kind for t in tasks}

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="nightly") as pool:
        while pending or running:
            # Settling a skip can unblock more tasks, so repeat until stable.
            progressed = True
            while progressed:
                progressed = False
                for task_id, task in list(pending.items()):
                    if any(d not in outcomes for d in task.waits_on):
                        continue
                    del pending[task_id]
                    progressed = True

                    unmet = [d for d in task.requires if not outcomes[d].succeeded]
                    if unmet:
                        outcomes[task_id] = _blocked(task, unmet)
                        _report(outcomes[task_id], console)
                        continue

                    inputs = {d: outcomes[d].value for d in task.requires}
                    running[pool.submit(task.run, inputs)] = task_id

            if not running:
                break

            done, _ = wait(running, return_when=FIRST_COMPLETED)
            for future in done:
                task_id = running.pop(future)
                try:
                    result = future.result()
                except Exception as e:
                    result = Err(
                        PipelineError(
                            kind=failure_kinds[task_id],
                            message=f"{type(e).__name__}: {e}",
                            stage=task_id,
                        )
                    )
                if isinstance(result, Ok):
                    outcome = TaskOutcome(task_id=task_id, status="succeeded", value=result.value)
                else:
                    outcome = TaskOutcome(
                        task_id=task_id, status="failed", error=result.error.at(task_id)
                    )
                outcomes[task_id] = outcome
                _report(outcome, console)

    return {t.id: outcomes[t.id] for t in tasks}
