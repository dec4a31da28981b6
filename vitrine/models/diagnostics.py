from dataclasses import dataclass, field


@dataclass
class StoreReport:
    store: str
    table: str
    exists: bool = False
    row_count: int = 0
    columns: list[str] = field(default_factory=list)
    sample_fields: list[str] = field(default_factory=list)
    missing_columns: list[str] = field(default_factory=list)
    drifted_fields: list[str] = field(default_factory=list)
    last_error: str | None = None

    @property
    def healthy(self) -> bool:
        return self.exists and not self.missing_columns and not self.drifted_fields and self.last_error is None


@dataclass
class DiagnosticSnapshot:
    generated_at: str
    stores: list[StoreReport] = field(default_factory=list)
    backends: dict[str, str] = field(default_factory=dict)
    # approved submissions still waiting for promotion; None when the count failed
    unpromoted: dict[str, int | None] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return all(report.healthy for report in self.stores)


@dataclass
class RepairOutcome:
    name: str
    changed: bool
    details: list[str] = field(default_factory=list)


@dataclass
class RepairReport:
    actions: list[RepairOutcome] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(action.changed for action in self.actions)
