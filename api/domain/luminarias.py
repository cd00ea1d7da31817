# SPDX-License-Identifier: Apache-2.0

"""
Luminaria domain logic for the outage workflow.

This module contains pure functions for the report, field verification and
repair steps, KMZ import conversion and status summaries. Each workflow step
returns the updated luminaria together with the history entry to persist.
"""

from typing import List, Dict, Any, Optional, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from models.entities import Luminaria, HistoryEntry, UserContext
from models.enums import BrigadeOutcome, HistoryAction, LuminariaStatus, ProblemType
from domain.downtime import compute_downtime_hours, split_instant

DEFAULT_REPORT_TIME = "18:00:00"


@dataclass
class ValidationResult:
    """Result of a workflow precondition check."""
    is_valid: bool
    errors: List[str]
    warnings: List[str] = field(default_factory=list)


@dataclass
class WorkflowResult:
    """Result of a luminaria workflow operation."""
    success: bool
    luminaria: Optional[Luminaria] = None
    history_entry: Optional[HistoryEntry] = None
    error_message: Optional[str] = None
    validation_errors: List[str] = field(default_factory=list)


@dataclass
class ImportBatch:
    """Luminarias and history entries produced by a KMZ import."""
    luminarias: List[Luminaria]
    history_entries: List[HistoryEntry]
    skipped_ids: List[str]


def build_history_entry(
    luminaria_id: str,
    action: HistoryAction,
    details: str,
    actor: UserContext,
    now: datetime
) -> HistoryEntry:
    """
    Create a history entry stamped with the actor and the action instant.

    Args:
        luminaria_id: Luminaria the entry belongs to
        action: History action label
        details: Human readable details
        actor: User performing the action
        now: Local instant of the action

    Returns:
        HistoryEntry ready to persist
    """
    date_str, time_str = split_instant(now)
    return HistoryEntry(
        luminaria_id=luminaria_id,
        date=date_str,
        time=time_str,
        action=action.value,
        details=details,
        user=actor.display_name,
        user_id=actor.user_id
    )


def validate_report(luminaria: Luminaria, problem: str) -> ValidationResult:
    """Check that a problem can be reported on a luminaria."""
    errors = []

    if not luminaria.can_report():
        errors.append(f"Luminaria already has an open incident (current status: {luminaria.status})")

    if problem not in {p.value for p in ProblemType}:
        errors.append(f"Unknown problem type: {problem}")

    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def report_problem(
    luminaria: Luminaria,
    problem: str,
    actor: UserContext,
    now: datetime
) -> WorkflowResult:
    """
    Register a reported problem.

    Args:
        luminaria: Luminaria being reported
        problem: Problem type label
        actor: Reporting user
        now: Local instant of the report

    Returns:
        WorkflowResult with the reported luminaria and its history entry
    """
    validation = validate_report(luminaria, problem)
    if not validation.is_valid:
        return WorkflowResult(
            success=False,
            error_message="Report validation failed",
            validation_errors=validation.errors
        )

    report_date, report_time = split_instant(now)
    updated = luminaria.model_copy()
    updated.report(actor.user_id, problem, report_date, report_time)

    entry = build_history_entry(
        updated.id,
        HistoryAction.REPORT,
        f"Problema reportado: {problem}",
        actor,
        now
    )
    return WorkflowResult(success=True, luminaria=updated, history_entry=entry)


def verify_in_field(
    luminaria: Luminaria,
    outcome: str,
    notes: str,
    actor: UserContext,
    now: datetime,
    photo_url: Optional[str] = None
) -> WorkflowResult:
    """
    Record the brigade's verification of a reported luminaria.

    An ``ok`` outcome closes the report without repair; ``confirmed`` keeps
    the incident open for the repair step.
    """
    if not luminaria.can_verify():
        return WorkflowResult(
            success=False,
            error_message="Verification validation failed",
            validation_errors=[
                f"Only reported luminarias can be verified (current status: {luminaria.status})"
            ]
        )

    confirmed = outcome == BrigadeOutcome.CONFIRMED.value
    updated = luminaria.model_copy()
    updated.verify(actor.user_id, confirmed, notes, photo_url)

    if confirmed:
        entry = build_history_entry(
            updated.id, HistoryAction.CONFIRMATION, f"Problema confirmado: {notes}", actor, now
        )
    else:
        entry = build_history_entry(
            updated.id, HistoryAction.VERIFIED_OK, "Poste verificado como OK", actor, now
        )

    return WorkflowResult(success=True, luminaria=updated, history_entry=entry)


def mark_fixed(
    luminaria: Luminaria,
    fix_start_date: str,
    fix_end_date: str,
    actor: UserContext,
    now: datetime
) -> WorkflowResult:
    """
    Close an incident and compute the lit-window downtime.

    A luminaria with no report date is charged from the fix day; a missing
    report time counts from dusk.

    Raises:
        InvalidTimestampError: If the stored report timestamp is malformed
    """
    errors = []
    if not luminaria.can_fix():
        errors.append(f"Luminaria has no open incident (current status: {luminaria.status})")
    if fix_end_date < fix_start_date:
        errors.append("Repair end date cannot be before start date")
    if errors:
        return WorkflowResult(
            success=False,
            error_message="Repair validation failed",
            validation_errors=errors
        )

    fix_date, fix_time = split_instant(now)
    downtime = compute_downtime_hours(
        luminaria.report_date or fix_date,
        luminaria.report_time or DEFAULT_REPORT_TIME,
        fix_date,
        fix_time
    )

    updated = luminaria.model_copy()
    updated.mark_fixed(actor.user_id, fix_date, fix_time, fix_start_date, fix_end_date, downtime)

    entry = build_history_entry(
        updated.id,
        HistoryAction.REPAIR,
        f"Luminaria reparada del {fix_start_date} al {fix_end_date}. "
        f"Tiempo de inactividad: {downtime:.2f} horas.",
        actor,
        now
    )
    return WorkflowResult(success=True, luminaria=updated, history_entry=entry)


def build_import_batch(
    points: Iterable[Any],
    existing_ids: Iterable[str],
    actor: UserContext,
    now: datetime
) -> ImportBatch:
    """
    Convert parsed KMZ points into new luminarias.

    Points whose id is already registered, or repeated inside the same file,
    are skipped.

    Args:
        points: Parsed points with ``id``, ``lat``, ``lng``, ``name`` and ``description``
        existing_ids: Luminaria ids already stored
        actor: Importing user
        now: Local instant of the import

    Returns:
        ImportBatch with the luminarias to create and their history entries
    """
    seen = set(existing_ids)
    luminarias = []
    entries = []
    skipped = []

    for point in points:
        if point.id in seen:
            skipped.append(point.id)
            continue
        seen.add(point.id)

        luminarias.append(Luminaria(
            id=point.id,
            name=point.name,
            description=point.description,
            lat=point.lat,
            lng=point.lng,
            status=LuminariaStatus.OK,
            created_by=actor.user_id,
            updated_by=actor.user_id
        ))
        entries.append(build_history_entry(
            point.id,
            HistoryAction.KMZ_IMPORT,
            f"Luminaria cargada desde archivo KMZ: {point.id}",
            actor,
            now
        ))

    return ImportBatch(luminarias=luminarias, history_entries=entries, skipped_ids=skipped)


def summarize_statuses(counts: Mapping[str, int]) -> Dict[str, int]:
    """
    Shape raw per-status counts into the summary served by the API.

    Every status appears, with 0 when it has no members; ``total`` counts
    every luminaria, including any stored with a status outside the enum.
    """
    summary = {status.value: counts.get(status.value, 0) for status in LuminariaStatus}
    summary["total"] = sum(counts.values())
    return summary
