"""
Erreurs typées du cœur "demandes & stock".

Chaque erreur porte un `code` stable (lisible machine) et un message humain.
Aucune erreur brute de la couche SQL ne sort du cœur : elle est convertie
en StorageFailure par `backend.services.transaction.atomic` (ou `reading`).
"""

from __future__ import annotations


class SupplyError(Exception):
    code = "SUPPLY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SupplyError):
    """Entrée manquante ou mal formée (faute de l'appelant, aucun effet)."""

    code = "VALIDATION_ERROR"


class NotFoundError(SupplyError):
    code = "NOT_FOUND"


class InvalidItemError(NotFoundError):
    code = "INVALID_ITEM"

    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id} does not exist")
        self.item_id = item_id


class InvalidTransitionError(SupplyError):
    code = "INVALID_TRANSITION"

    def __init__(self, request_id: int, status: str):
        super().__init__(f"Request {request_id} is {status}, only pending requests can be closed")
        self.request_id = request_id
        self.status = status


class InvalidJustificationError(SupplyError):
    code = "INVALID_JUSTIFICATION"

    def __init__(self, justification: str | None):
        super().__init__(f"Invalid rejection justification: {justification!r}")
        self.justification = justification


class StorageFailure(SupplyError):
    """Échec transactionnel (connexion, contrainte, deadlock). Rejouable tel quel."""

    code = "STORAGE_FAILURE"
    retryable = True

    def __init__(self, operation: str, reason: str):
        super().__init__(f"{operation} failed in storage: {reason}")
        self.operation = operation
        self.reason = reason
