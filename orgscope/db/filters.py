from __future__ import annotations

from sqlalchemy import event, select
from sqlalchemy.orm import Session, with_loader_criteria

SCOPE_INFO_KEY = "catalog_predicate"


@event.listens_for(Session, "do_orm_execute")
def _apply_catalog_predicate(execute_state) -> None:
    """
    Row-level scoping for the catalog tables.

    Query code stays unaware of scope:
        db.scalars(select(Employee)).all()
    returns only in-scope rows whenever the session carries a compiled
    `CatalogPredicate` in `Session.info["catalog_predicate"]`. Compliance
    rows follow their employee.
    """

    if not execute_state.is_select:
        return

    predicate = execute_state.session.info.get(SCOPE_INFO_KEY)
    if predicate is None:
        return

    # Local import to avoid cycles.
    from orgscope.models.directory import ComplianceRecord, Employee  # noqa: WPS433 (local import)

    employee_criteria = predicate.criteria_for(Employee)
    in_scope_ids = select(Employee.employee_id).where(employee_criteria)

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(Employee, employee_criteria),
        with_loader_criteria(ComplianceRecord, ComplianceRecord.employee_id.in_(in_scope_ids)),
    )
