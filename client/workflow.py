"""
client/workflow.py -- The scan-side state machine.

    Idle -> Scanning -> Scanned -> [AwaitingCode] -> Verified -> Routed
                           |
                           +-- (invalid) stays Scanned until reset()

  start_capture()   Idle -> Scanning. Rejected while a capture is active.
  submit_token(raw) Scanning -> Scanned, then straight on to AwaitingCode or
                    Verified when the scan is valid.
  submit_code(code) AwaitingCode -> Verified. A failed check stays in
                    AwaitingCode with the reason message set, so the user retries.
  route()           Verified -> Routed. Returns (audit_id, dept_id).
  cancel()          Scanning -> Idle. Stops the capture source.
  reset()           any state -> Idle, discarding everything captured.

The gateway is anything with scan(token), verify_code(token, code),
get_audit(id), get_auditor(id) and get_department(id): client.api.ApiClient
in production. Display-name lookups are best-effort; a CollaboratorError or a
missing record puts a placeholder on screen and the session carries on.
A CollaboratorError from scan or verify_code itself is a real fault and is
raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Optional

from client.capture import CaptureSource, extract_token
from client.dedup import RecentEventCache
from core.clock import Clock, utcnow
from core.errors import CaptureInProgressError, CollaboratorError, WorkflowStateError
from grants.models import REASON_MESSAGES, ScanReason, ScanResult, VerifyResult

logger = logging.getLogger("fieldpass.client.workflow")

PLACEHOLDER = "N/A"

# A code held in front of the camera decodes several times a second.
_DUPLICATE_WINDOW = timedelta(seconds=5)


class ScanState(str, Enum):
    IDLE = "Idle"
    SCANNING = "Scanning"
    SCANNED = "Scanned"
    AWAITING_CODE = "AwaitingCode"
    VERIFIED = "Verified"
    ROUTED = "Routed"


@dataclass(frozen=True)
class ScanDisplay:
    """What the scanning party sees about the credential holder."""

    audit_title: str
    auditor_name: str
    dept_name: str
    auditor_avatar: Optional[str] = None


class ScanSession:
    """One scanning client. Not thread-safe; drive it from a single UI loop."""

    def __init__(
        self,
        gateway: Any,
        source: Optional[CaptureSource] = None,
        clock: Clock = utcnow,
        recent: Optional[RecentEventCache] = None,
    ) -> None:
        self.gateway = gateway
        self.source = source
        self.clock = clock
        self.recent = recent or RecentEventCache(max_entries=64, window=_DUPLICATE_WINDOW)
        self._clear()

    def _clear(self) -> None:
        self.state = ScanState.IDLE
        self.token: Optional[str] = None
        self.result: Optional[ScanResult] = None
        self.display: Optional[ScanDisplay] = None
        self.message: Optional[str] = None

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def start_capture(self) -> None:
        if self.state == ScanState.SCANNING:
            raise CaptureInProgressError("A capture is already running; cancel it first.")
        if self.state != ScanState.IDLE:
            raise WorkflowStateError(f"Cannot start a capture from {self.state.value}; reset first.")
        self.state = ScanState.SCANNING
        if self.source is not None:
            self.source.start(self.submit_token)

    def cancel(self) -> None:
        """Abort an active capture. Nothing is scanned or recorded."""
        if self.state != ScanState.SCANNING:
            raise WorkflowStateError(f"No capture to cancel in {self.state.value}.")
        self._stop_source()
        self.state = ScanState.IDLE

    def _stop_source(self) -> None:
        if self.source is not None:
            self.source.stop()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit_token(self, raw: str) -> Optional[ScanResult]:
        """Scan captured text. Returns None when the capture was a recent duplicate."""
        if self.state != ScanState.SCANNING:
            raise WorkflowStateError(f"Not capturing (state {self.state.value}).")
        token = extract_token(raw)
        now = self.clock()
        if token and self.recent.seen(token, now):
            logger.debug("Dropped duplicate capture")
            return None

        if not token:
            result = ScanResult(is_valid=False, reason=ScanReason.INVALID)
        else:
            try:
                result = self.gateway.scan(token)
            except CollaboratorError:
                self._stop_source()
                self.state = ScanState.IDLE
                raise
            self.recent.add(token, now)

        self._stop_source()
        self.token = token
        self.result = result
        self.state = ScanState.SCANNED
        if not result.is_valid:
            self.message = REASON_MESSAGES[result.reason or ScanReason.INVALID]
            return result

        self.display = self._resolve_display(result)
        # A code handed back by the scan means the caller is the holder; no prompt.
        if result.requires_code and not result.verify_code:
            self.state = ScanState.AWAITING_CODE
        else:
            self.state = ScanState.VERIFIED
        return result

    def submit_code(self, code: str) -> VerifyResult:
        if self.state != ScanState.AWAITING_CODE:
            raise WorkflowStateError(f"No verify code expected in {self.state.value}.")
        result = self.gateway.verify_code(self.token, code)
        if result.is_valid:
            self.state = ScanState.VERIFIED
            self.message = None
        else:
            self.message = REASON_MESSAGES[result.reason or ScanReason.CODE_MISMATCH]
        return result

    def route(self) -> tuple[str, str]:
        """Hand off (audit_id, dept_id) for department-scoped work. Terminal."""
        if self.state != ScanState.VERIFIED:
            raise WorkflowStateError(f"Cannot route from {self.state.value}.")
        self.state = ScanState.ROUTED
        return self.result.audit_id, self.result.dept_id

    def reset(self) -> None:
        """Return to Idle from any state ("scan another")."""
        if self.state == ScanState.SCANNING:
            self._stop_source()
        self._clear()

    # ------------------------------------------------------------------
    # Display resolution
    # ------------------------------------------------------------------

    def _resolve_display(self, result: ScanResult) -> ScanDisplay:
        audit = self._lookup(self.gateway.get_audit, result.audit_id)
        auditor = self._lookup(self.gateway.get_auditor, result.auditor_id)
        dept = self._lookup(self.gateway.get_department, result.dept_id)
        return ScanDisplay(
            audit_title=audit.title if audit else PLACEHOLDER,
            auditor_name=auditor.display_name if auditor else PLACEHOLDER,
            dept_name=dept.name if dept else f"Department {result.dept_id}",
            auditor_avatar=auditor.avatar_url if auditor else None,
        )

    @staticmethod
    def _lookup(fetch: Callable[[str], Any], key: str) -> Any:
        try:
            return fetch(key)
        except CollaboratorError as exc:
            logger.warning("Display lookup failed for %s: %s", key, exc)
            return None
