import json
import logging
import statistics

from .records import MatchTask


class MatchObserver:
    """
    Receives matching-pass measurements and writes them as JSON log lines.

    Swap in a subclass to ship the same numbers to a metrics backend.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("match_service.matching")

    def _emit(self, level: int, payload: dict):
        self.logger.log(level, json.dumps(payload, separators=(",", ":"), default=str))

    def candidates_found(self, mode: str, task: MatchTask, count: int):
        self._emit(
            logging.DEBUG,
            {"event": "candidates_found", "mode": mode, "category": task.category, "candidates": count},
        )

    def candidate_failed(self, doer_id: int, error: Exception):
        self.logger.exception("candidate %s skipped after evaluation error: %s", doer_id, error)

    def pass_completed(
        self,
        mode: str,
        task: MatchTask,
        candidates: int,
        scores: list[float],
        duration_ms: float,
    ):
        payload = {
            "event": "match_pass",
            "mode": mode,
            "category": task.category,
            "candidates": candidates,
            "eligible": len(scores),
            "duration_ms": round(duration_ms, 2),
        }
        if scores:
            payload["score_max"] = round(max(scores), 2)
            payload["score_min"] = round(min(scores), 2)
            payload["score_mean"] = round(statistics.fmean(scores), 2)
        self._emit(logging.INFO, payload)
