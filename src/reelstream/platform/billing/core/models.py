"""
Base pydantic model for billing domain objects.
"""

from pydantic import BaseModel, ConfigDict


class BillingModel(BaseModel):
    """Base model for billing entities, loadable straight from ORM rows."""

    model_config = ConfigDict(from_attributes=True, validate_assignment=True)
