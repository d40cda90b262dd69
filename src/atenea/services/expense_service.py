from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Optional

from atenea.domain.errors import NotFoundError, ValidationError
from atenea.domain.models import Expense, ExpenseDraft, Identity
from atenea.services.auth_service import ensure_allowed

log = logging.getLogger(__name__)

BUSINESS_CATEGORIES = (
    "Mercadería",
    "Alquiler",
    "Servicios",
    "Impuestos",
    "Moratoria",
    "Inversión",
    "Marketing",
    "Otros Negocio",
)
PERSONAL_CATEGORIES = (
    "Comida/Súper",
    "Transporte",
    "Ocio/Salidas",
    "Salud",
    "Vivienda",
    "Suscripciones",
    "Otros Personal",
)
EXPENSE_CATEGORIES = BUSINESS_CATEGORIES + PERSONAL_CATEGORIES


class ExpenseService:
    def __init__(self, repo, identity: Optional[Identity] = None):
        self.repo = repo
        self.identity = identity

    def list_expenses(self) -> list[Expense]:
        return self.repo.list_expenses()

    def get_expense(self, expense_id: str) -> Expense:
        expense = self.repo.get_expense(expense_id)
        if not expense:
            raise NotFoundError("Expense not found.")
        return expense

    def save_expense(self, draft: ExpenseDraft, expense_id: Optional[str] = None) -> Expense:
        """Updates the expense when an id is given, records a new one otherwise."""
        if expense_id:
            return self.update_expense(expense_id, draft)
        return self.add_expense(draft)

    def add_expense(self, draft: ExpenseDraft) -> Expense:
        ensure_allowed(self.identity, "manage_expenses")
        fields = self._clean(draft)
        expense = Expense(
            id=self.repo.new_id(),
            created_at=self.repo.now_iso(),
            user_id=self.repo.user_id,
            **fields,
        )
        self.repo.add_expense(expense)
        self.repo.refresh()
        log.info(
            "expense_recorded expense_id=%s amount=%s category=%s",
            expense.id, expense.amount, expense.category,
        )
        return expense

    def update_expense(self, expense_id: str, draft: ExpenseDraft) -> Expense:
        ensure_allowed(self.identity, "manage_expenses")
        fields = self._clean(draft)
        current = self.get_expense(expense_id)
        expense = replace(current, updated_at=self.repo.now_iso(), **fields)
        if not self.repo.update_expense(expense):
            raise NotFoundError("Expense not found.")
        self.repo.refresh()
        log.info("expense_updated expense_id=%s amount=%s", expense.id, expense.amount)
        return expense

    def delete_expense(self, expense_id: str) -> int:
        ensure_allowed(self.identity, "manage_expenses")
        removed = self.repo.delete_expense(expense_id)
        if not removed:
            raise NotFoundError("Expense not found.")
        self.repo.refresh()
        log.info("expense_deleted expense_id=%s", expense_id)
        return removed

    @staticmethod
    def _clean(draft: ExpenseDraft) -> dict:
        try:
            date.fromisoformat(draft.date)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid date: {draft.date!r}. Expected YYYY-MM-DD.") from e

        description = (draft.description or "").strip()
        if not description:
            raise ValidationError("Description is required.")
        amount = int(draft.amount)
        if amount <= 0:
            raise ValidationError("Amount must be > 0.")
        if draft.category not in EXPENSE_CATEGORIES:
            raise ValidationError(f"Unknown expense category: {draft.category!r}.")

        # the invoice amount only means something for type A invoices
        invoice_amount = int(draft.invoice_amount or 0) if draft.has_invoice_a else 0
        if invoice_amount < 0 or invoice_amount > amount:
            raise ValidationError("Invoice amount must be between 0 and the expense amount.")

        return {
            "date": draft.date,
            "description": description,
            "amount": amount,
            "category": draft.category,
            "has_invoice_a": bool(draft.has_invoice_a),
            "invoice_amount": invoice_amount,
        }
