"""
BASTION Execution Report Builder

Assembles the report for one dispatch away from the published copy. The
executor publishes the built report under the dispatch lock, so readers
only ever see complete reports.
"""

from datetime import datetime
from typing import Optional

from bastion.sequences import StepTracker
from bastion.types import (
    MAX_ERROR_DETAILS_LENGTH,
    MAX_STATUS_SUMMARY_LENGTH,
    ExecutionReport,
    ResponseRequest,
    ResponseType,
    ResultCode,
    StepStatus,
    SystemMode,
    bounded,
)


class ReportBuilder:
    """Collects the pieces of an ExecutionReport during a dispatch."""

    def __init__(self, request: ResponseRequest):
        self.request = request
        self.start_time: datetime = datetime.now()
        self.end_time: Optional[datetime] = None
        self.result: int = ResultCode.SUCCESS
        self.summary: str = ""
        self.extra_errors: list[str] = []

    def finish(self, result: int, summary: str):
        """Stamp the end time and the dispatch outcome."""
        self.end_time = datetime.now()
        self.result = result
        self.summary = summary

    def note_error(self, message: str):
        """Record an error that is not tied to a step (timeout, unknown type)."""
        self.extra_errors.append(message)

    def build(self, tracker: StepTracker, mode: SystemMode) -> ExecutionReport:
        """
        Produce the immutable report.

        Args:
            tracker: Step outcomes of the sequence (may be empty)
            mode: Facility mode at completion

        Returns:
            Completed ExecutionReport
        """
        errors = list(self.extra_errors)
        errors.extend(
            o.detail or o.name
            for o in tracker.outcomes
            if o.status != StepStatus.SUCCEEDED
        )

        summary = self.summary
        if tracker.attempted:
            summary = f"{summary}: {tracker.succeeded}/{tracker.attempted} operations succeeded"

        response_type = self.request.type if isinstance(self.request.type, ResponseType) else None

        return ExecutionReport(
            response_id=self.request.timestamp,
            overall_result=int(self.result),
            start_time=self.start_time,
            end_time=self.end_time or datetime.now(),
            sub_operations=tracker.attempted,
            success_count=tracker.succeeded,
            failed_count=tracker.failed,
            warning_count=tracker.warnings,
            system_mode=mode,
            status_summary=bounded(summary, MAX_STATUS_SUMMARY_LENGTH),
            error_details=bounded("; ".join(errors), MAX_ERROR_DETAILS_LENGTH),
            response_type=response_type,
            steps=tuple(tracker.outcomes),
        )
