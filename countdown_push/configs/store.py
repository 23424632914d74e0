from pydantic import BaseModel, Field


class StoreConfig(BaseModel):
    Path: str = Field(default="subscriptions.json", description="JSON file holding persisted subscriptions")
