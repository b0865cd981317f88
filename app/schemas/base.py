from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema for request/response models."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class CamelSchema(BaseSchema):
    """Schema exchanged with the payment gateway, which uses camelCase keys."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )
