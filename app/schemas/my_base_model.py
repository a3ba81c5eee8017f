import logging
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class CustomBaseModel(BaseModel):
    """Custom base model for all response schemas.
    - reads ORM rows and plain dicts alike
    - Decimal columns are served as floats
    - simple typed fields that fail to convert fall back to their default
    """

    model_config = ConfigDict(from_attributes=True)

    def __init__(self, **data: Any) -> None:
        for attr, value in list(data.items()):
            field = self.__class__.model_fields.get(attr)
            if field is None or value is None:
                continue
            attr_type = field.annotation
            if attr_type is float and isinstance(value, Decimal):
                data[attr] = float(value)
            elif attr_type in (int, float, str, bool):
                try:  #  try to convert the value to the type of the attribute
                    data[attr] = attr_type(value)
                except (TypeError, ValueError):
                    logger.warning("Invalid value for key %s, using default", attr)
                    data[attr] = field.default
        super().__init__(**data)

    @classmethod
    def from_record(cls, record: Any, **extra: Any):
        if isinstance(record, dict):
            data = dict(record)
        else:
            data = {
                name: getattr(record, name)
                for name in cls.model_fields
                if hasattr(record, name)
            }
        data.update(extra)
        return cls(**data)


class Message(CustomBaseModel):
    message: str = ""
    status_code: int = 200
