"""Exceptions du service de terrains."""


class FieldServiceError(Exception):
    """Exception de base du service."""


class InvalidInput(FieldServiceError):
    """Entrée refusée avant toute écriture (erreur client)."""


class InvalidCoordinate(InvalidInput):
    """Longitude/latitude non finie ou hors limites."""


class InvalidRadius(InvalidInput):
    """Rayon de recherche <= 0, non fini, ou unité inconnue."""


class InvalidSearchLimit(InvalidInput):
    """Nombre maximal de résultats <= 0."""


class LocationIndexError(FieldServiceError):
    """Erreur d'E/S de l'index de localisation."""


class IndexWriteError(LocationIndexError):
    """Échec d'écriture (ajout ou suppression) dans l'index de localisation."""


class IndexQueryError(LocationIndexError):
    """Échec d'une requête de rayon sur l'index de localisation."""


class StoreError(FieldServiceError):
    """Erreur d'E/S du store principal."""


class NotFound(FieldServiceError):
    """Document absent lors d'un accès direct par id."""

    def __init__(self, field_id: str):
        super().__init__(f"field {field_id} not found")
        self.field_id = field_id


class InvalidToken(FieldServiceError):
    """Jeton d'authentification invalide (signature ou forme des claims)."""
