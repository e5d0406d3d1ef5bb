"""Error taxonomy for the marketplace.

Services raise these; the web layer converts them to the response envelope
in exactly one place (see tutorhub.web.api).
"""

from __future__ import annotations


class TutorHubError(Exception):
    """Base class for expected, client-facing failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(TutorHubError):
    """Malformed or missing input."""

    status_code = 400


class UnauthorizedError(TutorHubError):
    """Missing, malformed or expired credential."""

    status_code = 401


class ForbiddenError(TutorHubError):
    """Authenticated principal lacks the role or ownership required."""

    status_code = 403


class NotFoundError(TutorHubError):
    """Referenced entity does not exist (or is not visible to the caller)."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class ConflictError(TutorHubError):
    """State-machine violation, duplicate, or double booking."""

    status_code = 400
