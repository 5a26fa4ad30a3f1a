from pydantic import BaseModel


class WebhookAcceptedResponse(BaseModel):
    status: str = "accepted"
    kind: str
    id: str
    action: str


class HealthResponse(BaseModel):
    status: str
    version: str
