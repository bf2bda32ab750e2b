"""
Meta section model for xmlstore.
"""

from typing import Optional
from pydantic import BaseModel, Field


class StoreMeta(BaseModel):
    """
    The bookkeeping kept in the document's meta section.
    """

    ai: int = Field(
        1,
        description="The next identifier handed out by add_data"
    )

    last_add: Optional[int] = Field(
        None,
        description="Unix timestamp (seconds) of the last insert, None if nothing was added yet"
    )
