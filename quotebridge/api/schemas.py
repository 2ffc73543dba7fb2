from pydantic import BaseModel, ConfigDict, Field
from typing import Dict
from uuid import UUID
from ..quote_models import Quote, QuoteRequest


class SubmitQuoteRequest(BaseModel):
    product: str


class SubmitQuoteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: UUID = Field(..., alias="requestId")


RequestSnapshot = Dict[UUID, QuoteRequest]
ResultSnapshot = Dict[UUID, Quote]
