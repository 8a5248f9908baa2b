"""
CaseVault Backend - ORM Models
================================

Importing this package registers every table with `Base.metadata`
(used by Alembic and by the test suite's create_all).
"""

from casevault.models.counter import CodeCounter, CounterNamespace
from casevault.models.classification import CaseType
from casevault.models.record import Backlog, Case
from casevault.models.category import DocumentCategory
from casevault.models.document import DocumentMetadata

__all__ = [
    "Backlog",
    "Case",
    "CaseType",
    "CodeCounter",
    "CounterNamespace",
    "DocumentCategory",
    "DocumentMetadata",
]
