"""
Shared pydantic base for models that cross the HTTP boundary.

Python attributes stay snake_case; the JSON wire format is camelCase
(``senderName``, ``usageCount``, ``totalEmailsSent``) to match what existing
relay callers and the admin dashboard already send and read.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }
