from typing import Optional

from pydantic import BaseModel, ConfigDict

from context_budget.structs import CallType


class ModelMetaData(BaseModel):
    """Data class for per-model budget information."""

    model_config = ConfigDict(frozen=True)

    name: str
    context_size: int
    max_new_tokens: Optional[int] = None
    call_type: CallType = CallType.NONE
    encoding: Optional[str] = None

    def renamed(self, name: str) -> "ModelMetaData":
        """Same metadata under a snapshot id."""
        return self.model_copy(update={"name": name})
