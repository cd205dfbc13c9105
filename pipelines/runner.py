from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol, List, Optional

from utils.logging_setup import init_logging


@dataclass
class RunContext:
    owner_person_id: Optional[str] = None
    contacts: list = field(default_factory=list)
    meta: dict = field(default_factory=dict)
    cancel_event: Optional[threading.Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class Step(Protocol):
    def run(self, ctx: RunContext) -> RunContext:
        ...


class Pipeline:
    def __init__(self, steps: List[Step]):
        self.steps = steps

    def run(self, ctx: RunContext) -> RunContext:
        # Make logging idempotent for any direct runner use
        init_logging()
        for step in self.steps:
            if ctx.cancelled:
                ctx.meta["cancelled"] = True
                break
            ctx = step.run(ctx)
        return ctx
