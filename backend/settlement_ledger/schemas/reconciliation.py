"""Ledger integrity report schemas."""

from pydantic import BaseModel, Field, computed_field


class LedgerIssue(BaseModel):
    collection: str
    document_id: str
    check: str
    detail: str


class IntegrityReport(BaseModel):
    documents_checked: int = 0
    sources_checked: int = 0
    issues: list[LedgerIssue] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ok(self) -> bool:
        return not self.issues
