"""Structural validation of pipeline step graphs."""

from __future__ import annotations

import heapq
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from vaultline.exceptions import PipelineError, PipelineErrorKind
from vaultline.pipeline.definition import BaseStep, PipelineDefinition


@dataclass(frozen=True)
class ValidatedGraph:
    """A pipeline whose references form a single-rooted, acyclic graph.

    Attributes:
        pipeline: The validated definition.
        order: Step ids in topological order (ties broken by id, ascending).
        producers: For each step id, the ids of the steps it consumes.
        consumers: For each step id, the ids of the steps consuming it.
        starting_step_id: The only step without upstream references.
    """

    pipeline: PipelineDefinition
    order: tuple[str, ...]
    producers: Mapping[str, tuple[str, ...]]
    consumers: Mapping[str, tuple[str, ...]]
    starting_step_id: str
    _steps: Mapping[str, BaseStep] = field(repr=False, default_factory=dict)

    @property
    def pipeline_id(self) -> str:
        """Identity of the validated pipeline."""
        return self.pipeline.id

    def step(self, step_id: str) -> BaseStep:
        """Get a step by id."""
        return self._steps[step_id]

    @property
    def ordered_steps(self) -> list[BaseStep]:
        """Steps in topological order."""
        return [self._steps[step_id] for step_id in self.order]

    def upstream_steps(self, step_id: str) -> list[BaseStep]:
        """Resolved producer steps of a step."""
        return [self._steps[p] for p in self.producers[step_id]]

    def is_source(self, step_id: str) -> bool:
        """True if the step has no upstream dependency."""
        return not self.producers[step_id]

    @property
    def terminal_step_ids(self) -> list[str]:
        """Steps nobody consumes, in topological order."""
        return [s for s in self.order if not self.consumers[s]]

    def position(self, step_id: str) -> int:
        """Index of a step in the topological order."""
        return self.order.index(step_id)


class GraphValidator:
    """Checks that a pipeline's step graph is well formed.

    Validation is pure: it reads the definition and either returns a
    ``ValidatedGraph`` or raises ``PipelineError``. Run it whenever steps or
    references change, and again right before execution.

    Example:
        >>> graph = GraphValidator().validate(pipeline)
        >>> graph.order
        ('backup', 'compress', 'upload')
    """

    def validate(self, pipeline: PipelineDefinition) -> ValidatedGraph:
        """Validate a pipeline definition.

        Args:
            pipeline: Definition to check.

        Returns:
            ValidatedGraph with a deterministic topological order.

        Raises:
            PipelineError: ``missing_starting_step``, ``too_many_starting_steps``,
                ``invalid_step_references`` or ``invalid_structure``, with the
                offending property paths in ``details["paths"]``.
        """
        steps = pipeline.steps
        index = {step.id: i for i, step in enumerate(steps)}

        starting = [step for step in steps if step.is_source]
        if not starting:
            raise PipelineError(
                PipelineErrorKind.MISSING_STARTING_STEP,
                f"Pipeline '{pipeline.id}' has no step without references",
                details={"paths": ["steps"]},
            )
        if len(starting) > 1:
            raise PipelineError(
                PipelineErrorKind.TOO_MANY_STARTING_STEPS,
                f"Pipeline '{pipeline.id}' has {len(starting)} steps without references",
                details={
                    "paths": [f"steps[{index[s.id]}]" for s in starting],
                    "step_ids": [s.id for s in starting],
                },
            )

        invalid_paths = [
            f"steps[{i}].previous_ids[{j}]"
            for i, step in enumerate(steps)
            for j, ref in enumerate(step.previous_ids)
            if ref not in index
        ]
        if invalid_paths:
            raise PipelineError(
                PipelineErrorKind.INVALID_STEP_REFERENCES,
                f"Pipeline '{pipeline.id}' references unknown steps",
                details={"paths": invalid_paths},
            )

        producers = {step.id: tuple(step.previous_ids) for step in steps}
        consumer_lists: dict[str, list[str]] = {step.id: [] for step in steps}
        for step in steps:
            for ref in step.previous_ids:
                consumer_lists[ref].append(step.id)
        consumers = {k: tuple(sorted(v)) for k, v in consumer_lists.items()}

        start_id = starting[0].id
        order = self._topological_order(producers, consumers)
        reachable = self._reachable_from(start_id, consumers)

        broken = sorted(
            (set(index) - set(order)) | (set(index) - reachable),
            key=index.__getitem__,
        )
        if broken:
            cyclic = sorted(set(index) - set(order), key=index.__getitem__)
            raise PipelineError(
                PipelineErrorKind.INVALID_STRUCTURE,
                f"Pipeline '{pipeline.id}' contains a cycle or unreachable steps",
                details={
                    "paths": [f"steps[{index[s]}]" for s in broken],
                    "cyclic_step_ids": cyclic,
                    "unreachable_step_ids": sorted(
                        set(index) - reachable, key=index.__getitem__
                    ),
                },
            )

        return ValidatedGraph(
            pipeline=pipeline,
            order=tuple(order),
            producers=MappingProxyType(producers),
            consumers=MappingProxyType(consumers),
            starting_step_id=start_id,
            _steps=MappingProxyType({step.id: step for step in steps}),
        )

    @staticmethod
    def _topological_order(
        producers: Mapping[str, tuple[str, ...]],
        consumers: Mapping[str, tuple[str, ...]],
    ) -> list[str]:
        """Kahn's algorithm with a min-heap on step id.

        Steps that sit on a cycle never reach in-degree zero and are left
        out of the result.
        """
        in_degree = {step_id: len(refs) for step_id, refs in producers.items()}
        ready = [step_id for step_id, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            current = heapq.heappop(ready)
            order.append(current)
            for consumer in consumers[current]:
                in_degree[consumer] -= 1
                if in_degree[consumer] == 0:
                    heapq.heappush(ready, consumer)
        return order

    @staticmethod
    def _reachable_from(
        start_id: str, consumers: Mapping[str, tuple[str, ...]]
    ) -> set[str]:
        seen = {start_id}
        queue = deque([start_id])
        while queue:
            current = queue.popleft()
            for consumer in consumers[current]:
                if consumer not in seen:
                    seen.add(consumer)
                    queue.append(consumer)
        return seen
