"""Run-scoped reports: probe diagnostics, per-model outcomes and batch summary."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import TransferPhase


class ProbeRow(BaseModel):
    """One (instance, version) probe attempt."""

    model_config = ConfigDict(protected_namespaces=())

    version: str
    status: int | None = None  # None when the request never got a response
    model_count: int | None = None
    url: str
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 200


class ProbeReport(BaseModel):
    """Diagnostic table of every probe attempt against one instance."""

    instance_id: str
    rows: list[ProbeRow] = Field(default_factory=list)
    best_version: str | None = None

    @property
    def supported_versions(self) -> list[str]:
        return [row.version for row in self.rows if row.succeeded]

    def format_table(self) -> list[str]:
        """Render rows as aligned text lines for operator troubleshooting."""
        lines = [f"{'VERSION':<22} {'STATUS':<7} {'MODELS':<7} URL"]
        for row in self.rows:
            status = str(row.status) if row.status is not None else "ERR"
            count = str(row.model_count) if row.model_count is not None else "-"
            lines.append(f"{row.version:<22} {status:<7} {count:<7} {row.url}")
        return lines


class ResourceOutcome(BaseModel):
    """Terminal result of one model's transfer protocol."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    instance_id: str
    state: TransferPhase
    phase: TransferPhase | None = None  # phase in which a failure or skip occurred
    reason: str | None = None
    error_detail: str | None = None
    final_status: str | None = None
    authorize_attempts: int = 0
    poll_count: int = 0
    duration_seconds: float = 0.0


class BatchProgress(BaseModel):
    """Progress of one batch run, updated as models move through their phases."""

    model_config = ConfigDict(protected_namespaces=())

    total: int = 0
    processed: int = 0
    index: int = 0
    model_id: str | None = None
    phase: TransferPhase | None = None
    percent_completed: int | None = None

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self.processed / self.total


class BatchReport(BaseModel):
    """Summary of a batch run."""

    destination_id: str
    destination_version: str
    probe: ProbeReport
    outcomes: list[ResourceOutcome] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def count(self, state: TransferPhase) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is state)

    @property
    def completed(self) -> int:
        return self.count(TransferPhase.COMPLETED)

    @property
    def skipped(self) -> int:
        return self.count(TransferPhase.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(TransferPhase.FAILED)

    @property
    def all_completed(self) -> bool:
        return all(outcome.state is TransferPhase.COMPLETED for outcome in self.outcomes)

    def summary_lines(self) -> list[str]:
        """Operator-facing summary: one line per model plus totals."""
        lines = [
            f"Destination {self.destination_id} (API {self.destination_version})",
            f"{'MODEL':<32} {'INSTANCE':<20} {'STATE':<10} REASON",
        ]
        for outcome in self.outcomes:
            reason = outcome.reason or outcome.final_status or ""
            if outcome.error_detail:
                reason = f"{reason} ({outcome.error_detail})"
            lines.append(
                f"{outcome.model_id:<32} {outcome.instance_id:<20} "
                f"{outcome.state.value:<10} {reason}"
            )
        lines.append(
            f"Total: {len(self.outcomes)}  completed: {self.completed}  "
            f"skipped: {self.skipped}  failed: {self.failed}"
        )
        return lines
