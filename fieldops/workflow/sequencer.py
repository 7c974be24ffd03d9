"""
Step sequencer: current step, completion tracking and forward/back navigation.
"""
from datetime import date
from typing import Callable, Iterable, List, Optional, Set, Tuple

import structlog

from .accumulator import FieldAccumulator
from .checklist import ChecklistSchema, DEFAULT_SCHEMA
from .steps import STEPS, StepDefinition, validate_step
from .validation import FieldError

logger = structlog.get_logger(__name__)


class StepSequencer:
    def __init__(
        self,
        accumulator: FieldAccumulator,
        steps: Tuple[StepDefinition, ...] = STEPS,
        schema: ChecklistSchema = DEFAULT_SCHEMA,
        today: Optional[Callable[[], date]] = None,
    ):
        if not steps:
            raise ValueError("At least one step is required")
        self.accumulator = accumulator
        self.steps = steps
        self.schema = schema
        self._today = today or date.today
        self.current_step = steps[0].id
        self.completed_steps: Set[int] = set()
        self.last_errors: List[FieldError] = []
        # any field update invalidates the previous attempt's errors
        accumulator.subscribe(lambda _event: self.clear_errors())

    @property
    def first_step(self) -> int:
        return self.steps[0].id

    @property
    def last_step(self) -> int:
        return self.steps[-1].id

    def step(self, step_id: int) -> StepDefinition:
        for s in self.steps:
            if s.id == step_id:
                return s
        raise KeyError(step_id)

    @property
    def active(self) -> StepDefinition:
        return self.step(self.current_step)

    def clear_errors(self) -> None:
        self.last_errors = []

    def is_step_completed(self, step_id: int) -> bool:
        return step_id in self.completed_steps

    def mark_completed(self, step_ids: Iterable[int]) -> None:
        self.completed_steps.update(step_ids)

    @property
    def progress_pct(self) -> int:
        return round(len(self.completed_steps) / len(self.steps) * 100)

    def validate_current(self) -> List[FieldError]:
        return validate_step(self.active, self.accumulator.snapshot(), self.schema, self._today())

    async def go_next(self) -> List[FieldError]:
        """
        Validate the active step against the settled record and advance.
        Returns the error list; on errors nothing changes.
        """
        await self.accumulator.settle()
        errors = self.validate_current()
        if errors:
            self.last_errors = errors
            logger.info("step_validation_failed", step=self.current_step, errors=len(errors))
            return errors
        self.last_errors = []
        self.completed_steps.add(self.current_step)
        if self.current_step < self.last_step:
            self.current_step = self._next_id(self.current_step)
        return []

    def go_previous(self) -> int:
        if self.current_step > self.first_step:
            ids = [s.id for s in self.steps]
            self.current_step = ids[ids.index(self.current_step) - 1]
        return self.current_step

    def _next_id(self, step_id: int) -> int:
        ids = [s.id for s in self.steps]
        return ids[ids.index(step_id) + 1]
