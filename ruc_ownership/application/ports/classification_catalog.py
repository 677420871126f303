"""Port interface for the classification (tipification) catalog."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from ruc_ownership.domain.entities.classification import Classification, Subclassification


class ClassificationCatalog(ABC):
    @abstractmethod
    async def get_classification(self, classification_id: uuid.UUID) -> Classification | None:
        ...

    @abstractmethod
    async def get_subclassification(
        self, subclassification_id: uuid.UUID
    ) -> Subclassification | None:
        ...
