"""
Service layer for Creditor operations.

Creditors are payment recipients: plain reference data with no balance.
``document`` (tax id) is unique when present.

Returns CreditorInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.validation import FieldErrors
from ledger_kernel.domain.values import CreditorUpdate
from ledger_kernel.exceptions import CreditorNotFoundError, DuplicateCreditorDocumentError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.creditor import Creditor
from ledger_kernel.services.base import BaseService

logger = get_logger("services.creditor")


@dataclass(frozen=True)
class CreditorInfo:
    """Immutable DTO for creditor data."""

    id: UUID
    name: str
    document: str | None
    created_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "document": self.document,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CreditorService(BaseService[Creditor]):
    """
    Creditor Store.

    Handles CRUD for creditors and enforces document uniqueness on
    create and update.
    """

    def _to_dto(self, creditor: Creditor) -> CreditorInfo:
        return CreditorInfo(
            id=creditor.id,
            name=creditor.name,
            document=creditor.document,
            created_at=creditor.created_at,
        )

    def _get_by_id(self, creditor_id: UUID) -> Creditor:
        creditor = self.session.get(Creditor, creditor_id)
        if creditor is None:
            raise CreditorNotFoundError(str(creditor_id))
        return creditor

    def _document_taken(self, document: str, exclude_id: UUID | None = None) -> bool:
        stmt = select(Creditor.id).where(Creditor.document == document)
        if exclude_id is not None:
            stmt = stmt.where(Creditor.id != exclude_id)
        return self.session.execute(stmt).first() is not None

    def _flush_unique(self, creditor: Creditor, changes: dict[str, Any] | None = None) -> None:
        """Apply ``changes`` and flush inside a savepoint."""
        changes = changes or {}
        document = changes.get("document", creditor.document)
        try:
            with self.session.begin_nested():
                for key, value in changes.items():
                    setattr(creditor, key, value)
                self.session.add(creditor)
                self.session.flush()
        except IntegrityError as exc:
            raise DuplicateCreditorDocumentError(document) from exc

    def exists(self, creditor_id: UUID) -> bool:
        return self.session.get(Creditor, creditor_id) is not None

    def get_creditor(self, creditor_id: UUID) -> CreditorInfo:
        """
        Get creditor by id.

        Raises:
            CreditorNotFoundError: If the creditor doesn't exist.
        """
        return self._to_dto(self._get_by_id(creditor_id))

    def list_creditors(self) -> list[CreditorInfo]:
        """All creditors, newest first."""
        stmt = select(Creditor).order_by(Creditor.created_at.desc(), Creditor.name)
        return [self._to_dto(c) for c in self.session.execute(stmt).scalars().all()]

    def create_creditor(self, name: Any, document: Any = None) -> CreditorInfo:
        """
        Create a creditor.

        A blank document is stored as NULL.

        Raises:
            ValidationError: Blank or overlong name/document.
            DuplicateCreditorDocumentError: Document already in use.
        """
        errors = FieldErrors()
        name = errors.text("name", name)
        document = errors.text("document", document, required=False) or None
        errors.raise_if_any()

        if document is not None and self._document_taken(document):
            raise DuplicateCreditorDocumentError(document)

        creditor = Creditor(name=name, document=document)
        self._flush_unique(creditor)

        logger.info(
            "creditor_created",
            extra={"creditor_id": str(creditor.id), "document": document},
        )
        return self._to_dto(creditor)

    def update_creditor(self, creditor_id: UUID, update: CreditorUpdate) -> CreditorInfo:
        """
        Apply a partial update.  ``document=None`` clears the document.

        Raises:
            CreditorNotFoundError: If the creditor doesn't exist.
            ValidationError: Blank or overlong fields.
            DuplicateCreditorDocumentError: Document used by another creditor.
        """
        provided = update.provided()
        errors = FieldErrors()
        values: dict[str, Any] = {}
        if "name" in provided:
            values["name"] = errors.text("name", provided["name"])
        if "document" in provided:
            values["document"] = errors.text(
                "document", provided["document"], required=False,
            ) or None
        errors.raise_if_any()

        creditor = self._get_by_id(creditor_id)
        document = values.get("document")
        if document is not None and self._document_taken(document, exclude_id=creditor_id):
            raise DuplicateCreditorDocumentError(document)

        self._flush_unique(creditor, values)

        logger.info(
            "creditor_updated",
            extra={"creditor_id": str(creditor_id), "fields": sorted(values)},
        )
        return self._to_dto(creditor)

    def delete_creditor(self, creditor_id: UUID) -> CreditorInfo:
        """
        Delete a creditor.  Payments keep their (now dangling) creditor id.

        Raises:
            CreditorNotFoundError: If the creditor doesn't exist.
        """
        creditor = self._get_by_id(creditor_id)
        info = self._to_dto(creditor)
        self.session.delete(creditor)
        self.session.flush()

        logger.info("creditor_deleted", extra={"creditor_id": str(creditor_id)})
        return info
