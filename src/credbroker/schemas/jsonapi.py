"""JSON:API envelope models using Pydantic v2.

Integration and job endpoints speak JSON:API: mutations accept a
``{ data: { type, attributes } }`` request wrapper and every response is one
of the envelope types below. Errors are not JSON:API error objects; the
app-level ``BrokerError`` handler renders them as
``{"success": false, "error", "category"}``.

Reference: https://jsonapi.org/format/
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class JSONAPIRequestData(BaseModel, Generic[T]):
    """The ``data`` object inside a JSON:API request body."""

    type: str
    attributes: T


class JSONAPIRequest(BaseModel, Generic[T]):
    """JSON:API request envelope wrapping ``{ data: { type, attributes } }``."""

    data: JSONAPIRequestData[T]


class JSONAPIResource(BaseModel):
    """A single JSON:API resource object."""

    type: str
    id: str
    attributes: dict[str, Any]


class JSONAPISingleResponse(BaseModel):
    data: JSONAPIResource
    meta: dict[str, Any] | None = None


class JSONAPIListResponse(BaseModel):
    data: list[JSONAPIResource]
    meta: dict[str, Any] | None = None
    links: dict[str, Any] | None = None
