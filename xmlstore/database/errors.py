"""
Exceptions raised by the xmlstore engine.
"""


class StoreStructureError(RuntimeError):
    """
    The document does not have the structure the store relies on.

    Raised for a missing meta section, an unreadable 'ai' counter, a missing
    data container, malformed XML met while streaming, or a field match that
    cannot be traced back to its record.
    """
