"""
BaseService -- abstract base for the kernel's SQL port implementations.

Every service here receives the caller's SQLAlchemy ``Session`` and
persists with ``session.flush()`` -- never ``session.commit()``.  The
workflow engine owns commit and rollback, so a document commit, an
assignment write, a gate event and a placement made for one transition
land together or not at all.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
