class PersistenceError(Exception):
    """A read or write against the card store failed.

    Raised by store adapters for any backend failure. The session layer does
    not retry; callers report it and may re-submit the same grade.
    """
