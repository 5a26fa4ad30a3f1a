from pydantic import BaseModel


class QARequest(BaseModel):
    question: str
    user_id: str
    client_block_id: str | None = None


class ReassociateRequest(BaseModel):
    # None detaches the library item (its chunks move to the placeholder note)
    note_id: str | None = None
