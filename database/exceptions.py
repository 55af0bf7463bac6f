"""Database exceptions shared by the managers that issue SQL."""

class DatabaseError(Exception):
    """Raised when a query fails for infrastructure reasons."""
    pass

class DatabaseSchemaError(DatabaseError):
    """Raised when schema files are invalid or a migration fails."""
    pass
