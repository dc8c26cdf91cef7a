"""Erreurs métier partagées par l'API HTTP, le serveur MCP et la CLI."""

from typing import Optional


class TaskboardError(Exception):
    """Base de toutes les erreurs attendues"""


class ValidationError(TaskboardError, ValueError):
    """Entrée invalide, rejetée avant toute mutation"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(TaskboardError, LookupError):
    """Tâche ou sous-tâche inconnue (différent d'une liste vide)"""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class StorageError(TaskboardError):
    """Fichier de données illisible ou écriture impossible. On peut réessayer."""


class NotificationError(TaskboardError):
    """Surveillance du fichier indisponible, le push live est dégradé"""
