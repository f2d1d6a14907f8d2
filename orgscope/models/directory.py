from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgscope.db.base import Base


class Employee(Base):
    """
    Catalog copy of the org chart.

    Column names match `catalog.columns` in the scope config so a compiled
    `CatalogPredicate` applies to this table unchanged.
    """

    __tablename__ = "employees"

    employee_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    manager_id: Mapped[int | None] = mapped_column(ForeignKey("employees.employee_id"), nullable=True, index=True)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role_level: Mapped[str] = mapped_column(String(20), nullable=False)

    region: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active", nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    compliance_records: Mapped[list["ComplianceRecord"]] = relationship(back_populates="employee")


class ComplianceRecord(Base):
    """Per-employee office-attendance compliance for one reporting period."""

    __tablename__ = "compliance_records"
    __table_args__ = (UniqueConstraint("employee_id", "period"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.employee_id"), nullable=False, index=True)
    period: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    compliance_rate: Mapped[float] = mapped_column(Float, nullable=False)

    employee: Mapped[Employee] = relationship(back_populates="compliance_records")
