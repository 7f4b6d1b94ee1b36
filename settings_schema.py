from typing import Literal

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    weight_unit: Literal["kg", "lb"] = "kg"
    rest_seconds: int = Field(90, ge=0)
    search_page_size: int = Field(50, gt=0)
    chat_model: str = "gpt-3.5-turbo"
    chat_max_tokens: int = Field(800, gt=0)
    chat_temperature: float = Field(0.7, ge=0.0, le=2.0)
    openai_api_key: str = ""


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
