"""Domain error taxonomy.

Every error raised by a use case derives from OwnershipError and carries a
stable ``code`` that the API layer maps to an HTTP status.
"""

from __future__ import annotations


class OwnershipError(Exception):
    code = "internal"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(OwnershipError):
    code = "validation_error"


class NotFound(OwnershipError):
    code = "not_found"


class EntityNotFound(NotFound):
    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Entity not found: {ref}")


class UserNotFound(NotFound):
    def __init__(self, user_id: object):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class BatchNotFound(NotFound):
    def __init__(self, batch_id: object):
        self.batch_id = batch_id
        super().__init__(f"Assignment batch not found: {batch_id}")


class NoActiveAssignment(NotFound):
    code = "no_active_assignment"

    def __init__(self, entity_id: object):
        self.entity_id = entity_id
        super().__init__(f"No active assignment for entity {entity_id}")


class Forbidden(OwnershipError):
    code = "forbidden"


class NotOwner(Forbidden):
    code = "not_owner"

    def __init__(self, entity_id: object, requester_id: object):
        self.entity_id = entity_id
        self.requester_id = requester_id
        super().__init__(
            f"User {requester_id} is not the current owner of entity {entity_id}"
        )


class OutOfScope(Forbidden):
    code = "out_of_scope"


class Conflict(OwnershipError):
    code = "conflict"


class ConcurrentModification(Conflict):
    code = "concurrent_modification"

    def __init__(self, entity_id: object, expected_previous_id: int | None):
        self.entity_id = entity_id
        self.expected_previous_id = expected_previous_id
        super().__init__(
            f"Ledger for entity {entity_id} moved past record {expected_previous_id}"
        )


class InternalError(OwnershipError):
    code = "internal"
