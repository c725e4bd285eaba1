class BomException(Exception):
    """Base class for errors raised by the query builder itself."""

    def __init__(self, message: str = "Query builder error."):
        super().__init__(message)


class ConfigurationException(BomException):
    """Exception raised when a query builder is constructed with invalid options."""

    def __init__(self, message: str = "Invalid query builder configuration."):
        super().__init__(message)


class InvalidObjectIdException(BomException, ValueError):
    def __init__(self, message: str = "Value is not a valid ObjectId"):
        super().__init__(message)
