from __future__ import annotations

import concurrent.futures as _fut
import logging
from typing import List, Optional

from db.connection import get_connection
from models.release import ReleaseReport
from ports.sharing import ContentSharerPort
from services.errors import PartialFailureError
from services.release_orchestrator import ReleaseOrchestrator

logger = logging.getLogger(__name__)


class ReleaseDispatcher:
    """Runs the release fan-out off the confirming request, on its own connection."""

    def __init__(
        self,
        db_path: str,
        sharer: ContentSharerPort,
        executor: Optional[_fut.Executor] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.db_path = db_path
        self.sharer = sharer
        self.max_workers = max_workers
        self._owns_executor = executor is None
        self.executor = executor or _fut.ThreadPoolExecutor(max_workers=1, thread_name_prefix="release")
        self.futures: List[_fut.Future] = []

    def __call__(self, target_person_id: str) -> _fut.Future:
        fut = self.executor.submit(self.run, target_person_id)
        self.futures.append(fut)
        return fut

    def run(self, target_person_id: str) -> ReleaseReport:
        conn = get_connection(self.db_path)
        try:
            orchestrator = ReleaseOrchestrator(conn, self.sharer, max_workers=self.max_workers)
            return orchestrator.on_confirmed(target_person_id)
        except PartialFailureError as exc:
            logger.warning(
                f"release incomplete, re-run to retry: {exc.message}",
                extra={"step": "release_dispatch", "status": "partial", "target": target_person_id},
            )
            return exc.report
        finally:
            conn.close()

    def wait(self, timeout: Optional[float] = None) -> List[ReleaseReport]:
        """Block until every dispatched release finished; returns their reports."""
        return [f.result(timeout=timeout) for f in self.futures]

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
