"""
Scan orchestration.

A scan classifies its input, runs the lookups that apply to the input type,
then scores, advises and reports. Progress is produced as a stream of
envelopes:

    {"type": "event", "event": ChainEvent}   (any number, in stage order)
    {"type": "result", "result": ScanResult} (exactly once, always last)

A stage's ``processing`` and final event share one id, so consumers can
replace the earlier event in place.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Any, AsyncIterator, Optional

import httpx

from exposure_scan.backend.breach import BreachProvider, build_breach_provider, check_breaches
from exposure_scan.backend.breach_store import BreachStore
from exposure_scan.backend.classifier import classify_input
from exposure_scan.backend.config import Settings
from exposure_scan.backend.correlate import (
    PlatformCorrelator,
    empty_result,
    note_email_source,
    username_from_email,
)
from exposure_scan.backend.guidance import generate_guidance
from exposure_scan.backend.image_risk import analyze_image_exposure
from exposure_scan.backend.models import ChainEvent, EventStatus, ScanResult
from exposure_scan.backend.transparency import generate_transparency
from exposure_scan.backend.verdict import generate_verdict

logger = logging.getLogger(__name__)

MODULE_SIGNAL = "signal"
MODULE_BREACH = "breach"
MODULE_CORRELATE = "correlate"
MODULE_IMAGE = "facerisk"
MODULE_VERDICT = "verdict"
MODULE_GUIDANCE = "guidance"
MODULE_TRANSPARENCY = "transparency"
MODULE_SYSTEM = "system"


class ScanState(str, Enum):
    CLASSIFYING = "classifying"
    BREACH_CHECKING = "breach_checking"
    CORRELATING = "correlating"
    IMAGE_ANALYZING = "image_analyzing"
    VERDICT_COMPUTING = "verdict_computing"
    GUIDANCE_GENERATING = "guidance_generating"
    TRANSPARENCY_GENERATING = "transparency_generating"
    COMPLETE = "complete"
    ABORTED = "aborted"


_TRANSITIONS: dict[ScanState, set[ScanState]] = {
    ScanState.CLASSIFYING: {
        ScanState.BREACH_CHECKING,
        ScanState.CORRELATING,
        ScanState.IMAGE_ANALYZING,
        ScanState.ABORTED,
    },
    ScanState.BREACH_CHECKING: {ScanState.CORRELATING, ScanState.IMAGE_ANALYZING, ScanState.VERDICT_COMPUTING},
    ScanState.CORRELATING: {ScanState.IMAGE_ANALYZING, ScanState.VERDICT_COMPUTING},
    ScanState.IMAGE_ANALYZING: {ScanState.VERDICT_COMPUTING},
    ScanState.VERDICT_COMPUTING: {ScanState.GUIDANCE_GENERATING},
    ScanState.GUIDANCE_GENERATING: {ScanState.TRANSPARENCY_GENERATING},
    ScanState.TRANSPARENCY_GENERATING: {ScanState.COMPLETE},
    ScanState.COMPLETE: set(),
    ScanState.ABORTED: set(),
}


class ScanStateError(RuntimeError):
    pass


class ScanRun:
    """Lifecycle of a single scan."""

    def __init__(self, scan_id: Optional[str] = None):
        self.id = scan_id or str(uuid.uuid4())
        self.state = ScanState.CLASSIFYING
        self.history: list[ScanState] = [self.state]

    def advance(self, new_state: ScanState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ScanStateError(f"Illegal scan transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def finished(self) -> bool:
        return self.state in (ScanState.COMPLETE, ScanState.ABORTED)


def new_event_id() -> str:
    return str(uuid.uuid4())


def new_event(
    module: str,
    message: str,
    status: EventStatus,
    details: Optional[dict[str, Any]] = None,
    event_id: Optional[str] = None,
) -> ChainEvent:
    return ChainEvent(id=event_id or new_event_id(), module=module, message=message, status=status, details=details)


def event_envelope(event: ChainEvent) -> dict[str, Any]:
    return {"type": "event", "event": event.to_wire()}


def result_envelope(result: ScanResult) -> dict[str, Any]:
    return {"type": "result", "result": result.to_wire()}


class ScanOrchestrator:
    def __init__(
        self,
        breach_provider: BreachProvider,
        correlator: PlatformCorrelator,
        image_timeout: float = 10.0,
        image_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.breach_provider = breach_provider
        self.correlator = correlator
        self.image_timeout = image_timeout
        self.image_transport = image_transport

    @classmethod
    def from_settings(cls, settings: Settings, store: BreachStore) -> "ScanOrchestrator":
        return cls(
            breach_provider=build_breach_provider(settings, store),
            correlator=PlatformCorrelator(
                panel_size=settings.correlation_platforms,
                timeout=settings.probe_timeout,
                deadline=settings.probe_deadline,
            ),
            image_timeout=settings.image_timeout,
        )

    async def stream(self, raw: str) -> AsyncIterator[dict[str, Any]]:
        """Envelopes for one scan. An unexpected failure ends the stream with a system error event."""
        try:
            async for envelope in self._pipeline(raw):
                yield envelope
        except Exception:
            logger.exception("Scan failed unexpectedly")
            yield event_envelope(new_event(MODULE_SYSTEM, "An error occurred", "error"))

    async def run_scan(self, raw: str) -> list[dict[str, Any]]:
        return [envelope async for envelope in self.stream(raw)]

    async def _pipeline(self, raw: str) -> AsyncIterator[dict[str, Any]]:
        run = ScanRun()

        signal_id = new_event_id()
        yield event_envelope(new_event(MODULE_SIGNAL, "Classifying input type...", "processing", event_id=signal_id))
        classification = classify_input(raw)
        logger.info(f"Scan {run.id}: input classified as {classification.type} ({classification.confidence})")
        yield event_envelope(
            new_event(
                MODULE_SIGNAL,
                f"Input classified as {classification.type}",
                "complete",
                details={"confidence": classification.confidence},
                event_id=signal_id,
            )
        )

        if not classification.is_valid:
            run.advance(ScanState.ABORTED)
            logger.info(f"Scan {run.id} aborted: {classification.validation_message}")
            yield event_envelope(
                new_event(MODULE_SIGNAL, classification.validation_message or "Invalid input", "error")
            )
            return

        kind = classification.type
        breach = correlation = image_risk = None

        if kind == "email":
            run.advance(ScanState.BREACH_CHECKING)
            breach_id = new_event_id()
            yield event_envelope(
                new_event(MODULE_BREACH, "Querying breach databases...", "processing", event_id=breach_id)
            )
            breach = await check_breaches(classification.value, self.breach_provider)
            if breach.found:
                message = f"Found in {breach.breach_count} breach{'' if breach.breach_count == 1 else 'es'}"
            elif breach.api_available:
                message = "No breaches found"
            else:
                message = "Breach check unavailable"
            yield event_envelope(
                new_event(
                    MODULE_BREACH,
                    message,
                    "complete",
                    details={
                        "breachCount": breach.breach_count,
                        "severity": breach.severity,
                        "apiAvailable": breach.api_available,
                    },
                    event_id=breach_id,
                )
            )
        else:
            yield event_envelope(new_event(MODULE_BREACH, "Breach check skipped (requires email)", "skipped"))

        if kind in ("email", "username"):
            run.advance(ScanState.CORRELATING)
            correlate_id = new_event_id()
            yield event_envelope(
                new_event(MODULE_CORRELATE, "Checking platform presence...", "processing", event_id=correlate_id)
            )
            username = username_from_email(classification.value) if kind == "email" else classification.value
            if username is None:
                correlation = empty_result(
                    "Email username part is too short or contains invalid characters for platform correlation."
                )
            else:
                total = len(self.correlator.panel)
                matches = []
                async for match in self.correlator.iter_probes(username):
                    matches.append(match)
                    yield event_envelope(
                        new_event(
                            MODULE_CORRELATE,
                            f"Checked {len(matches)}/{total} platforms...",
                            "processing",
                            details={"platform": match.platform, "available": match.available},
                            event_id=correlate_id,
                        )
                    )
                correlation = self.correlator.build_result(matches)
                if kind == "email":
                    correlation = note_email_source(correlation, username)
            found = correlation.found_count
            yield event_envelope(
                new_event(
                    MODULE_CORRELATE,
                    f"Checked {len(correlation.checked_platforms)} platforms, found {found} matches",
                    "complete",
                    details={
                        "checkedPlatforms": len(correlation.checked_platforms),
                        "found": found,
                        "risk": correlation.risk,
                    },
                    event_id=correlate_id,
                )
            )
        else:
            yield event_envelope(
                new_event(MODULE_CORRELATE, "Correlation check skipped (requires username or email)", "skipped")
            )

        if kind == "image_url":
            run.advance(ScanState.IMAGE_ANALYZING)
            image_id = new_event_id()
            yield event_envelope(
                new_event(MODULE_IMAGE, "Analyzing image exposure...", "processing", event_id=image_id)
            )
            image_risk = await analyze_image_exposure(
                classification.value, timeout=self.image_timeout, transport=self.image_transport
            )
            details: dict[str, Any] = {"analyzed": image_risk.analyzed}
            if not image_risk.analyzed and image_risk.limitation_note:
                details["limitation"] = image_risk.limitation_note
            yield event_envelope(
                new_event(
                    MODULE_IMAGE,
                    "Image analysis complete" if image_risk.analyzed else "Unable to analyze image",
                    "complete",
                    details=details,
                    event_id=image_id,
                )
            )
        else:
            yield event_envelope(
                new_event(MODULE_IMAGE, "Image analysis skipped (requires image URL)", "skipped")
            )

        run.advance(ScanState.VERDICT_COMPUTING)
        verdict_id = new_event_id()
        yield event_envelope(
            new_event(MODULE_VERDICT, "Calculating exposure score...", "processing", event_id=verdict_id)
        )
        verdict = generate_verdict(classification, breach, correlation, image_risk)
        yield event_envelope(
            new_event(
                MODULE_VERDICT,
                f"Exposure score: {verdict.exposure_score}/100 ({verdict.risk_level} risk)",
                "complete",
                details={"exposureScore": verdict.exposure_score, "riskLevel": verdict.risk_level},
                event_id=verdict_id,
            )
        )

        run.advance(ScanState.GUIDANCE_GENERATING)
        guidance_id = new_event_id()
        yield event_envelope(
            new_event(MODULE_GUIDANCE, "Generating recommendations...", "processing", event_id=guidance_id)
        )
        guidance = generate_guidance(classification, breach, correlation, image_risk)
        count = len(guidance.recommendations)
        yield event_envelope(
            new_event(MODULE_GUIDANCE, f"{count} recommendations generated", "complete", event_id=guidance_id)
        )

        run.advance(ScanState.TRANSPARENCY_GENERATING)
        transparency_id = new_event_id()
        yield event_envelope(
            new_event(MODULE_TRANSPARENCY, "Compiling transparency report...", "processing", event_id=transparency_id)
        )
        transparency = generate_transparency(classification, breach, correlation, image_risk)
        yield event_envelope(
            new_event(MODULE_TRANSPARENCY, "Transparency report ready", "complete", event_id=transparency_id)
        )

        result = ScanResult(
            id=run.id,
            input=classification,
            breach=breach,
            correlation=correlation,
            image_risk=image_risk,
            verdict=verdict,
            guidance=guidance,
            transparency=transparency,
        )
        run.advance(ScanState.COMPLETE)
        logger.info(f"Scan {run.id} complete: score={verdict.exposure_score} risk={verdict.risk_level}")
        yield result_envelope(result)
