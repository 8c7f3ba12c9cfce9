"""Error taxonomy for the nightly pipeline."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

PipelineErrorKind = Literal[
    "gate_failure",
    "registrar_failure",
    "build_failure",
    "merge_barrier_failure",
    "packaging_failure",
    "publish_failure",
    "invalid_config",
    "invalid_graph",
    "tool_missing",
]


@dataclass(frozen=True, slots=True)
class PipelineError:
    """Canonical error payload of every stage.

    ``stage`` is the task id that produced the error; the scheduler fills it
    in when the stage itself did not.
    """

    kind: PipelineErrorKind
    message: str
    hint: str | None = None
    stage: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message

    def at(self, stage: str) -> PipelineError:
        if self.stage is not None:
            return self
        return replace(self, stage=stage)
