"""POST /api/actions: unified mutation endpoint."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response, request_id_of
from core.models import (
    AllocationPolicy,
    ContractCreate,
    EstimateCreate, EstimateUpdate,
    InvoiceCreate, InvoiceUpdate,
    PaymentCreate, PaymentUpdate,
    PayTermCreate, PayTermUpdate,
)


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


class AllocateRequest(BaseModel):
    estimate_id: UUID
    policy: AllocationPolicy


class FromPayTermsRequest(BaseModel):
    project_ref: str
    pay_term_ids: list[UUID]
    date_issued: date | None = None
    due_date: date | None = None
    notes: str | None = None
    tax_rate: Decimal = Decimal(0)


class ConvertRequest(BaseModel):
    id: UUID
    date_issued: date | None = None
    due_date: date | None = None


class SignRequest(BaseModel):
    id: UUID
    signed_by: str
    signed_on: date | None = None


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "estimate": EstimateHandler(services["estimate"]),
        "invoice": InvoiceHandler(services["invoice"]),
        "pay_term": PayTermHandler(services["pay_term"]),
        "payment": PaymentHandler(services["payment"]),
        "contract": ContractHandler(services["contract"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))
        return success_response(result, request_id_of(request)).model_dump(mode="json")

    return router


def _id(data: dict, key: str = "id") -> UUID:
    if key not in data:
        raise ValueError(f"'{key}' is required")
    return UUID(str(data.pop(key)))


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class EstimateHandler:
    ALLOWED_ACTIONS = {"create", "update", "submit", "reject", "delete", "convert_to_invoice"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        estimate = self.service.create(EstimateCreate(**data))
        return estimate.model_dump(mode="json")

    def _handle_update(self, data: dict):
        estimate_id = _id(data)
        estimate = self.service.update(estimate_id, EstimateUpdate(**data))
        return estimate.model_dump(mode="json")

    def _handle_submit(self, data: dict):
        return self.service.submit(_id(data)).model_dump(mode="json")

    def _handle_reject(self, data: dict):
        return self.service.reject(_id(data)).model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(_id(data))
        return {"deleted": True}

    def _handle_convert_to_invoice(self, data: dict):
        request = ConvertRequest(**data)
        invoice = self.service.convert_to_invoice(request.id, request.date_issued, request.due_date)
        return invoice.model_dump(mode="json")


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "create_from_pay_terms", "update", "send", "cancel", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        invoice = self.service.create(InvoiceCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_create_from_pay_terms(self, data: dict):
        request = FromPayTermsRequest(**data)
        invoice = self.service.create_from_pay_terms(**request.model_dump())
        return invoice.model_dump(mode="json")

    def _handle_update(self, data: dict):
        invoice_id = _id(data)
        invoice = self.service.update(invoice_id, InvoiceUpdate(**data))
        return invoice.model_dump(mode="json")

    def _handle_send(self, data: dict):
        return self.service.send(_id(data)).model_dump(mode="json")

    def _handle_cancel(self, data: dict):
        return self.service.cancel(_id(data)).model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(_id(data))
        return {"deleted": True}


class PayTermHandler:
    ALLOWED_ACTIONS = {"allocate", "create", "update", "mark_paid", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        return self.service.create(PayTermCreate(**data)).model_dump(mode="json")

    def _handle_update(self, data: dict):
        term_id = _id(data)
        return self.service.update(term_id, PayTermUpdate(**data)).model_dump(mode="json")

    def _handle_allocate(self, data: dict):
        request = AllocateRequest(**data)
        terms = self.service.allocate(request.estimate_id, request.policy)
        return [term.model_dump(mode="json") for term in terms]

    def _handle_mark_paid(self, data: dict):
        term_id = _id(data)
        paid_on = date.fromisoformat(data["paid_on"]) if data.get("paid_on") else None
        return self.service.mark_paid(term_id, paid_on).model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(_id(data))
        return {"deleted": True}


class PaymentHandler:
    ALLOWED_ACTIONS = {"post", "void", "amend"}

    def __init__(self, service):
        self.service = service

    def _handle_post(self, data: dict):
        invoice_id = _id(data, "invoice_id")
        payment = PaymentCreate(**data)
        invoice = self.service.post(invoice_id, **payment.model_dump())
        return invoice.model_dump(mode="json")

    def _handle_void(self, data: dict):
        return self.service.void(_id(data)).model_dump(mode="json")

    def _handle_amend(self, data: dict):
        payment_id = _id(data)
        changes = PaymentUpdate(**data)
        invoice = self.service.amend(payment_id, **changes.model_dump())
        return invoice.model_dump(mode="json")


class ContractHandler:
    ALLOWED_ACTIONS = {"create", "sign", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        return self.service.create(ContractCreate(**data)).model_dump(mode="json")

    def _handle_sign(self, data: dict):
        request = SignRequest(**data)
        contract = self.service.sign(request.id, request.signed_by, request.signed_on)
        return contract.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(_id(data))
        return {"deleted": True}
