from pydantic import BaseModel

from schema.identifiers import Identifier


class ForeignKeySpec(BaseModel):
    """Expected foreign key from a column of the owning table to another table's column."""

    column: Identifier
    referenced_table: Identifier
    referenced_column: Identifier

    model_config = {"frozen": True}

    def constraint_name(self, table_name: str) -> str:
        """Conventional constraint name used when provisioning the key."""
        return f"FK_{table_name}_{self.column}_{self.referenced_table}"
