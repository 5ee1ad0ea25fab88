"""
Contract service.

Contracts are numbered from their own sequence and signed once. Signing
stamps the signer and date; after that the contract cannot be deleted.
"""

import logging
from datetime import date
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BillingConfig
from core.errors import InvalidStateError, NotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import ContractSigned
from core.models import Contract, ContractCreate, ContractStatus
from core.numbering import DocumentNumberSequencer
from core.store.base import BillingStore, DocumentKind
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)


class ContractService:
    """Service for contract operations."""

    def __init__(
        self,
        store: BillingStore,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BillingConfig,
    ):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.config = config
        self.numbers = DocumentNumberSequencer(store)

    def create(self, data: ContractCreate) -> Contract:
        """Create a draft contract with the next contract number."""
        now = now_utc()

        with self.store.transaction():
            contract = Contract(
                id=uuid4(),
                contract_number=self.numbers.next(
                    DocumentKind.CONTRACT,
                    self.config.contract_prefix,
                    self.config.contract_number_floor,
                ),
                project_ref=data.project_ref,
                contract_type=data.contract_type,
                amount_cents=data.amount_cents,
                status=ContractStatus.DRAFT,
                notes=data.notes,
                created_at=now,
                updated_at=now,
            )
            self.store.insert_contract(contract)

            self.audit.log_change(
                entity_type="contract",
                entity_id=contract.id,
                action=AuditAction.CREATE,
                changes={"created": contract.model_dump(mode="json")}
            )

        logger.info("Created contract %s for project %s", contract.contract_number, data.project_ref)
        return contract

    def get_by_id(self, contract_id: UUID) -> Contract | None:
        return self.store.get_contract(contract_id)

    def require(self, contract_id: UUID) -> Contract:
        """Get contract by ID, raising NotFoundError if missing."""
        contract = self.store.get_contract(contract_id)
        if contract is None:
            raise NotFoundError("contract", contract_id)
        return contract

    def list_for_project(self, project_ref: str) -> list[Contract]:
        """Contracts for a project, newest first."""
        return self.store.list_contracts(project_ref=project_ref)

    def sign(self, contract_id: UUID, signed_by: str, signed_on: date | None = None) -> Contract:
        """
        Record the client's signature.

        Args:
            contract_id: Contract to sign
            signed_by: Name of the signer
            signed_on: Signature date (defaults to today)

        Raises:
            NotFoundError: If contract not found
            ValidationError: If signed_by is blank
            InvalidStateError: If the contract is already signed
        """
        if not signed_by or not signed_by.strip():
            raise ValidationError("A signed contract needs the signer's name")

        with self.store.transaction():
            current = self.require(contract_id)
            if current.is_signed:
                raise InvalidStateError(
                    f"Contract {current.contract_number} was already signed on {current.signed_on}"
                )

            signed = current.model_copy(update={
                "status": ContractStatus.SIGNED,
                "signed_by": signed_by.strip(),
                "signed_on": signed_on or today_utc(),
                "updated_at": now_utc(),
            })
            self.store.update_contract(signed)

            self.audit.log_change(
                entity_type="contract",
                entity_id=contract_id,
                action=AuditAction.UPDATE,
                changes=compute_changes(
                    current.model_dump(mode="json"),
                    signed.model_dump(mode="json")
                )
            )

        logger.info("Contract %s signed by %s", signed.contract_number, signed.signed_by)
        self.event_bus.publish(ContractSigned.create(contract=signed))
        return signed

    def delete(self, contract_id: UUID) -> None:
        """
        Delete a draft contract.

        Raises:
            NotFoundError: If contract not found
            InvalidStateError: If the contract is signed
        """
        with self.store.transaction():
            current = self.require(contract_id)
            if current.is_signed:
                raise InvalidStateError(
                    f"Contract {current.contract_number} is signed and cannot be deleted"
                )
            self.store.delete_contract(contract_id)

            self.audit.log_change(
                entity_type="contract",
                entity_id=contract_id,
                action=AuditAction.DELETE,
                changes={"deleted": current.model_dump(mode="json")}
            )

        logger.info("Deleted contract %s", current.contract_number)
