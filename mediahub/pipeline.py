"""
Module: pipeline
Purpose: One staged flow (select, gate, execute, apply, reconcile) shared by
mutating operations, with concrete operations keyed by kind.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from . import coverage, import_engine
from .confirmation import confirm, is_interactive
from .detection import retrieve_latest_detection_result
from .exceptions import SelectionError
from .library import get_source, open_library
from .models.detection import CandidateMediaItem, DetectionResult
from .models.importresult import ImportOptions, ImportReport
from .models.library import Source
from .models.snapshot import ApplyResult, CandidateSet, MutationOutcome
from .utils import log_info

STATE_DRY_RUN = "dry_run"
STATE_NOTHING_TO_DO = "nothing_to_do"
STATE_CANCELLED = "cancelled"
STATE_APPLIED = "applied"


@dataclass
class StageReport:
    """Terminal outcome of one staged run."""

    kind: str
    state: str
    selection: Any
    outcome: Any = None
    applied: Any = None
    after: Any = None


class StagedOperation:
    """
    Strategy interface for a mutating operation. Subclasses provide the
    candidate selector, the executor and the apply/reconcile steps.
    """

    kind = ""

    def select(self) -> Any:
        raise NotImplementedError

    def is_empty(self, selection: Any) -> bool:
        raise NotImplementedError

    def describe(self, selection: Any) -> List[str]:
        """Lines shown before the confirmation question."""
        return []

    def question(self, selection: Any) -> str:
        return "Proceed? [yes/no]: "

    def execute(self, selection: Any) -> Any:
        raise NotImplementedError

    def apply(self, outcome: Any) -> Any:
        raise NotImplementedError

    def reconcile(self, selection: Any, applied: Any) -> Any:
        return None


class HashCoverageOperation(StagedOperation):
    kind = "index-hash"

    def __init__(self, library_root: str, limit: Optional[int] = None):
        self.library_root = library_root
        self.limit = limit

    def select(self) -> CandidateSet:
        return coverage.select_candidates(self.library_root, self.limit)

    def is_empty(self, selection: CandidateSet) -> bool:
        return selection.candidate_count == 0

    def describe(self, selection: CandidateSet) -> List[str]:
        count = f"{selection.candidate_count}"
        if selection.limit is not None:
            count += f" (limited to {selection.limit})"
        return [
            f"Library: {self.library_root}",
            f"Files to process: {count}",
            "This will compute SHA-256 hashes and update the baseline index.",
        ]

    def execute(self, selection: CandidateSet) -> MutationOutcome:
        return coverage.compute_missing_hashes(self.library_root, candidates=selection)

    def apply(self, outcome: MutationOutcome) -> ApplyResult:
        return coverage.apply_computed_hashes_and_write_index(self.library_root, outcome)

    def reconcile(self, selection: CandidateSet, applied: ApplyResult):
        return coverage.reconcile(applied.before, applied)


@dataclass(frozen=True)
class ImportSelection:
    source: Source
    detection: DetectionResult
    items: List[CandidateMediaItem]

    @property
    def candidate_count(self) -> int:
        return len(self.items)


class ImportOperation(StagedOperation):
    kind = "import"

    def __init__(self, library_root: str, source_id: str, options: Optional[ImportOptions] = None):
        self.library_root = library_root
        self.source_id = source_id
        self.options = options or ImportOptions()

    def select(self) -> ImportSelection:
        open_library(self.library_root)
        source = get_source(self.library_root, self.source_id)
        detection = retrieve_latest_detection_result(self.library_root, self.source_id)
        if detection is None:
            raise SelectionError(
                f"No detection result found for source {self.source_id}. Run detect first."
            )
        items = sorted((candidate.item for candidate in detection.new_candidates), key=lambda item: item.path)
        return ImportSelection(source=source, detection=detection, items=items)

    def is_empty(self, selection: ImportSelection) -> bool:
        return not selection.items

    def question(self, selection: ImportSelection) -> str:
        return (
            f"Import {selection.candidate_count} item(s) from {selection.source.path} "
            f"to {self.library_root}? [yes/no]: "
        )

    def execute(self, selection: ImportSelection):
        return import_engine.execute_import(
            self.library_root, selection.detection, selection.items, self.options
        )

    def apply(self, outcome) -> ImportReport:
        return import_engine.apply_import(self.library_root, outcome)

    def reconcile(self, selection: ImportSelection, applied: ImportReport):
        return applied.result.summary


OPERATIONS: Dict[str, Type[StagedOperation]] = {
    HashCoverageOperation.kind: HashCoverageOperation,
    ImportOperation.kind: ImportOperation,
}


def create_operation(kind: str, **kwargs) -> StagedOperation:
    try:
        operation_cls = OPERATIONS[kind]
    except KeyError:
        raise ValueError(f"Unknown operation kind: {kind}") from None
    return operation_cls(**kwargs)


def run_staged_operation(
    operation: StagedOperation,
    *,
    dry_run: bool = False,
    yes: bool = False,
    interactive: Optional[bool] = None,
    prompt: Optional[Callable[[str], str]] = None,
    announce: Optional[Callable[[str], None]] = None,
) -> StageReport:
    """
    Run an operation through selection, the confirmation gate, execution,
    atomic apply and reconciliation.

    Dry-run returns right after selection. An empty selection also returns
    before the gate. A declined prompt yields a cancelled report.

    Args:
        operation: Concrete StagedOperation.
        dry_run: Stop after selection.
        yes: Bypass the confirmation prompt.
        interactive: Override terminal detection for the gate.
        prompt: Blocking reader for the confirmation answer.
        announce: Receives the description lines shown before the question.

    Returns:
        StageReport with the terminal state and each stage's output.

    Raises:
        SelectionError: If selection fails; nothing was mutated.
        ConfirmationRequired: If non-interactive without `yes`; nothing was mutated.
        IndexWriteError: If the durable write fails; the prior index is intact.
    """
    selection = operation.select()
    if dry_run:
        log_info(f"{operation.kind}: dry run, no changes made")
        return StageReport(kind=operation.kind, state=STATE_DRY_RUN, selection=selection)
    if operation.is_empty(selection):
        return StageReport(kind=operation.kind, state=STATE_NOTHING_TO_DO, selection=selection)

    if interactive is None:
        interactive = is_interactive()
    if not yes and interactive and announce is not None:
        for line in operation.describe(selection):
            announce(line)
    proceed = confirm(
        operation.question(selection),
        yes=yes,
        interactive=interactive,
        prompt=prompt,
    )
    if not proceed:
        log_info(f"{operation.kind}: cancelled at confirmation")
        return StageReport(kind=operation.kind, state=STATE_CANCELLED, selection=selection)

    outcome = operation.execute(selection)
    applied = operation.apply(outcome)
    after = operation.reconcile(selection, applied)
    return StageReport(
        kind=operation.kind,
        state=STATE_APPLIED,
        selection=selection,
        outcome=outcome,
        applied=applied,
        after=after,
    )
