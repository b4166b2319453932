from pydantic import BaseModel, Field
from typing import Any, Dict


class InputProof(BaseModel):
    kid: str
    sig_b64: str


class CreateRecordRequest(BaseModel):
    owner: str = Field(min_length=1)
    ciphertexts: Dict[str, Any]
    proof: InputProof
    payment: int = Field(ge=0)


class CallerRequest(BaseModel):
    caller: str = Field(min_length=1)


class FulfillmentRequest(BaseModel):
    record_id: int
    plaintext: int
    kid: str
    sig_b64: str


class DepositRequest(BaseModel):
    sender: str = Field(min_length=1)
    amount: int = Field(gt=0)
