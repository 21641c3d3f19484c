"""
Structured operation log shared by reconciliation, repair and cleanup runs.

Every run records an ordered list of steps with timing and outcome plus a
summary (step counts, warnings, errors, duration). The same shape is produced
by SyncReconciler and CleanupOrchestrator so callers can render either one
with the same code.

Usage:
    log = OperationLog(order_id="ord-1", operation="sync")
    step = log.start_step("load_order")
    log.complete_step(step, details={"order_number": "1001"})
    log.finalize()
    payload = log.to_dict()

A finalized log is sealed: further mutation raises RuntimeError. The order
deletion flow finalizes cleanup with ``seal=False`` so it can append the
"delete order record" step before sealing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger("order_assets.operation_log")


STEP_SUCCESS = "success"
STEP_FAILED = "failed"
STEP_WARNING = "warning"


@dataclass
class Step:
    """One timed step of a run."""
    index: int
    name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        # Warning steps did their job; only the denormalized metadata lags.
        return self.status in (STEP_SUCCESS, STEP_WARNING)

    @property
    def finished(self) -> bool:
        return self.status is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "index": self.index,
            "name": self.name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "success": self.success,
            "status": self.status,
        }
        if self.details is not None:
            data["details"] = self.details
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class LogSummary:
    total_steps: int = 0
    successful_steps: int = 0
    failed_steps: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_steps": self.total_steps,
            "successful_steps": self.successful_steps,
            "failed_steps": self.failed_steps,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


class OperationLog:
    """
    Append-only step log for one run against one order.

    Attributes:
        order_id: Order the run operates on
        order_number: Human-facing order number (when known)
        operation: Run kind ("sync", "repair", "cleanup", ...)
        steps: Ordered steps
        summary: Aggregate counts, warnings and errors
    """

    def __init__(
        self,
        order_id: str,
        operation: str,
        order_number: Optional[str] = None,
    ):
        self.order_id = order_id
        self.order_number = order_number
        self.operation = operation
        self.start_time = datetime.utcnow()
        self.end_time: Optional[datetime] = None
        self.steps: List[Step] = []
        self.summary = LogSummary()
        self._sealed = False

    # =========================================================================
    # STEP RECORDING
    # =========================================================================

    def start_step(self, name: str) -> Step:
        self._ensure_open()
        step = Step(index=len(self.steps) + 1, name=name, start_time=datetime.utcnow())
        self.steps.append(step)
        return step

    def complete_step(self, step: Step, details: Optional[Dict[str, Any]] = None) -> Step:
        self._finish(step, STEP_SUCCESS, details=details)
        self.summary.successful_steps += 1
        logger.debug(f"[{self.operation} {self.order_id}] step {step.index} '{step.name}' succeeded")
        return step

    def fail_step(
        self,
        step: Step,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Step:
        self._finish(step, STEP_FAILED, details=details, error=error)
        self.summary.failed_steps += 1
        self.summary.errors.append(f"{step.name}: {error}" if error else f"{step.name} failed")
        logger.warning(f"[{self.operation} {self.order_id}] step {step.index} '{step.name}' failed: {error}")
        return step

    def warn_step(
        self,
        step: Step,
        warning: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Step:
        """Finish a step whose side effects landed but whose bookkeeping did not."""
        self._finish(step, STEP_WARNING, details=details, error=warning)
        self.summary.successful_steps += 1
        self.summary.warnings.append(f"{step.name}: {warning}")
        logger.warning(f"[{self.operation} {self.order_id}] step {step.index} '{step.name}' warning: {warning}")
        return step

    def record_step(
        self,
        name: str,
        success: bool,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Step:
        """Record an already-completed step in one call."""
        step = self.start_step(name)
        if success:
            return self.complete_step(step, details=details)
        return self.fail_step(step, error=error, details=details)

    def add_error(self, message: str) -> None:
        self._ensure_open()
        self.summary.errors.append(message)

    def add_warning(self, message: str) -> None:
        self._ensure_open()
        self.summary.warnings.append(message)

    # =========================================================================
    # FINALIZATION
    # =========================================================================

    def finalize(self, seal: bool = True) -> "OperationLog":
        """Stamp end time and duration. Sealed logs reject further changes."""
        self._ensure_open()
        self.end_time = datetime.utcnow()
        self.summary.total_steps = len(self.steps)
        self.summary.duration_ms = int((self.end_time - self.start_time).total_seconds() * 1000)
        self._sealed = seal
        return self

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def success(self) -> bool:
        return self.summary.failed_steps == 0

    @property
    def has_warnings(self) -> bool:
        return len(self.summary.warnings) > 0

    def _finish(
        self,
        step: Step,
        status: str,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        self._ensure_open()
        if step.finished:
            raise RuntimeError(f"Step '{step.name}' already finished")
        step.end_time = datetime.utcnow()
        step.status = status
        step.details = details
        step.error = error

    def _ensure_open(self) -> None:
        if self._sealed:
            raise RuntimeError(f"Operation log for order {self.order_id} is sealed")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "operation": self.operation,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "steps": [s.to_dict() for s in self.steps],
            "summary": self.summary.to_dict(),
        }
