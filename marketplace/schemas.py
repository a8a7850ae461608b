"""
Request bodies accepted by the marketplace endpoints.

Field names follow the camelCase wire format through an alias generator.
"""
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _number_as_text(value: Any) -> Any:
    # Wei amounts may arrive as JSON numbers; they are handled as text.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class ProcessPaymentRequest(CamelModel):
    transaction_hash: NonEmptyStr
    api_id: int
    developer_address: NonEmptyStr
    payment_amount: NonEmptyStr
    currency: str = 'ETH'
    network: Optional[str] = None

    @field_validator('payment_amount', mode='before')
    @classmethod
    def amount_as_text(cls, value: Any) -> Any:
        return _number_as_text(value)


class TokenAccessRequest(CamelModel):
    token_hash: NonEmptyStr
    api_id: int
    developer_address: NonEmptyStr


class ConsumeTokenRequest(TokenAccessRequest):
    request_headers: Dict[str, Any] = {}
    request_params: Dict[str, Any] = {}
    request_body: Any = None


class CreateProviderRequest(CamelModel):
    wallet_address: NonEmptyStr
    name: NonEmptyStr
    description: Optional[str] = None
    website: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None


class UpdateProviderRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: Optional[bool] = None


class CreateApiRequest(CamelModel):
    provider_id: int
    name: NonEmptyStr
    endpoint: NonEmptyStr
    public_path: NonEmptyStr
    price_per_call: NonEmptyStr
    description: Optional[str] = None
    category: Optional[str] = None
    method: Optional[str] = None
    currency: Optional[str] = None
    documentation: Optional[Any] = None

    @field_validator('price_per_call', mode='before')
    @classmethod
    def price_as_text(cls, value: Any) -> Any:
        return _number_as_text(value)


class UpdateApiRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    price_per_call: Optional[str] = None
    currency: Optional[str] = None
    documentation: Optional[Any] = None
    is_active: Optional[bool] = None

    @field_validator('price_per_call', mode='before')
    @classmethod
    def price_as_text(cls, value: Any) -> Any:
        return _number_as_text(value)


class FavoriteRequest(CamelModel):
    api_id: int
    user_address: NonEmptyStr
