from pydantic import BaseModel, ConfigDict


class BackendRow(BaseModel):
    """Row returned by the backend. Columns we don't model are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
