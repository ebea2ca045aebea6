import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buildledger.db.base import BaseModel


class ProjectPhase(BaseModel):
    __tablename__ = "project_phases"

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    order_index: Mapped[int] = mapped_column(default=0)
    budget_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0.00"))
    # {"materials": "...", "labour": "...", "equipment": "...", "subcontractors": "..."}
    budget_breakdown: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    actual_spending: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    actual_spending_total: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00")
    )
    committed_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0.00"))
    prerequisite_phase_ids: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)

    # Relationships
    project = relationship("Project", back_populates="phases")
