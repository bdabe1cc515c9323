from pydantic import BaseModel


class SweepResponse(BaseModel):
    success: bool
    total: int
    processed: int
    succeeded: int
    failed: int
    skipped: int
    message: str
