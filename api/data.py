"""GET /api/data: unified read endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response, request_id_of
from core.errors import NotFoundError


VALID_TYPES = {"estimates", "invoices", "payments", "pay_terms", "contracts", "history"}
HISTORY_ENTITIES = {"estimate", "invoice", "payment", "pay_term", "contract"}


def _dump_all(items) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    estimate_svc = services["estimate"]
    invoice_svc = services["invoice"]
    pay_term_svc = services["pay_term"]
    ledger = services["payment"]
    report_svc = services["report"]
    contract_svc = services["contract"]
    audit = services["audit"]

    # -------------------------------------------------------------------------
    # Reports (must be registered before the generic /data route)
    # -------------------------------------------------------------------------

    @router.get("/data/reports/overdue")
    async def overdue_report(request: Request, as_of: date | None = Query(None)):
        rows = report_svc.overdue(as_of)
        return success_response(_dump_all(rows), request_id_of(request)).model_dump(mode="json")

    @router.get("/data/reports/aging")
    async def aging_report(request: Request, as_of: date | None = Query(None)):
        rows = report_svc.aging(as_of)
        return success_response(_dump_all(rows), request_id_of(request)).model_dump(mode="json")

    @router.get("/data/reports/summary")
    async def invoice_summary(
        request: Request,
        start: date | None = Query(None),
        end: date | None = Query(None),
    ):
        summary = report_svc.summary(start, end)
        return success_response(summary.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    @router.get("/data/reports/payments")
    async def payment_summary(
        request: Request,
        start: date | None = Query(None),
        end: date | None = Query(None),
    ):
        summary = ledger.summarize(start, end)
        return success_response(summary.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Generic data endpoint
    # -------------------------------------------------------------------------

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        project_ref: str | None = Query(None),
        estimate_id: str | None = Query(None),
        invoice_id: str | None = Query(None),
        entity: str | None = Query(None),
        include: str | None = Query(None),
        filter: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        includes = set(include.split(",")) if include else set()

        if type == "estimates":
            data = _handle_estimates(estimate_svc, invoice_svc, pay_term_svc, id, project_ref, includes)
        elif type == "invoices":
            data = _handle_invoices(invoice_svc, ledger, id, project_ref, estimate_id, includes, filter, limit)
        elif type == "payments":
            data = _handle_payments(ledger, id, invoice_id)
        elif type == "pay_terms":
            data = _handle_pay_terms(pay_term_svc, id, project_ref, estimate_id)
        elif type == "contracts":
            data = _handle_contracts(contract_svc, id, project_ref)
        else:
            data = _handle_history(audit, entity, id)

        return success_response(data, request_id_of(request)).model_dump(mode="json")

    return router


def _handle_estimates(estimate_svc, invoice_svc, pay_term_svc, id, project_ref, includes):
    if id:
        estimate = estimate_svc.get_by_id(UUID(id))
        if estimate is None:
            raise NotFoundError("estimate", id)

        data = estimate.model_dump(mode="json")
        if "pay_terms" in includes:
            data["pay_terms"] = _dump_all(pay_term_svc.list_for_estimate(estimate.id))
        if "invoices" in includes:
            data["invoices"] = _dump_all(invoice_svc.list_for_estimate(estimate.id))
        return data

    if project_ref:
        return _dump_all(estimate_svc.list_for_project(project_ref))

    raise ValueError("'estimates' type requires 'id' or 'project_ref' parameter")


def _handle_invoices(invoice_svc, ledger, id, project_ref, estimate_id, includes, filter, limit):
    if id:
        invoice = invoice_svc.get_by_id(UUID(id))
        if invoice is None:
            raise NotFoundError("invoice", id)

        data = invoice.model_dump(mode="json")
        if "payments" in includes:
            data["payments"] = _dump_all(ledger.list_for_invoice(invoice.id))
        return data

    if filter == "unpaid":
        return _dump_all(invoice_svc.list_unpaid(limit))

    if estimate_id:
        return _dump_all(invoice_svc.list_for_estimate(UUID(estimate_id)))

    if project_ref:
        return _dump_all(invoice_svc.list_for_project(project_ref))

    raise ValueError("'invoices' type requires 'id', 'project_ref', 'estimate_id' or filter=unpaid")


def _handle_payments(ledger, id, invoice_id):
    if id:
        payment = ledger.get_by_id(UUID(id))
        if payment is None:
            raise NotFoundError("payment", id)
        return payment.model_dump(mode="json")

    if invoice_id:
        return _dump_all(ledger.list_for_invoice(UUID(invoice_id)))

    raise ValueError("'payments' type requires 'id' or 'invoice_id' parameter")


def _handle_pay_terms(pay_term_svc, id, project_ref, estimate_id):
    if id:
        term = pay_term_svc.get_by_id(UUID(id))
        if term is None:
            raise NotFoundError("pay_term", id)
        return term.model_dump(mode="json")

    if estimate_id:
        return _dump_all(pay_term_svc.list_for_estimate(UUID(estimate_id)))

    if project_ref:
        return _dump_all(pay_term_svc.list_for_project(project_ref))

    raise ValueError("'pay_terms' type requires 'id', 'project_ref' or 'estimate_id' parameter")


def _handle_contracts(contract_svc, id, project_ref):
    if id:
        contract = contract_svc.get_by_id(UUID(id))
        if contract is None:
            raise NotFoundError("contract", id)
        return contract.model_dump(mode="json")

    if project_ref:
        return _dump_all(contract_svc.list_for_project(project_ref))

    raise ValueError("'contracts' type requires 'id' or 'project_ref' parameter")


def _handle_history(audit, entity, id):
    if entity not in HISTORY_ENTITIES or not id:
        raise ValueError(
            f"'history' type requires 'id' and 'entity' ({', '.join(sorted(HISTORY_ENTITIES))})"
        )

    entries = audit.get_entity_history(entity, UUID(id))
    return [
        {
            "id": str(entry["id"]),
            "entity_type": entry["entity_type"],
            "entity_id": str(entry["entity_id"]),
            "action": entry["action"],
            "changes": entry["changes"],
            "created_at": entry["created_at"].isoformat(),
        }
        for entry in entries
    ]
