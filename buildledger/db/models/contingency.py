import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.common.enums import RecordStatus
from buildledger.db.base import BaseModel


class ContingencyDraw(BaseModel):
    __tablename__ = "contingency_draws"

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[RecordStatus] = mapped_column(
        String(20), nullable=False, default=RecordStatus.PENDING
    )
    drawn_on: Mapped[date] = mapped_column(Date, nullable=False, default=date.today, index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
