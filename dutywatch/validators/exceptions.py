"""Exceptions raised when changing the validator registry."""


class RegistryError(Exception):
    """Base class for rejected registry changes."""


class InvalidFormat(RegistryError):
    """Input is neither a decimal index nor a 0x-prefixed 48-byte pubkey."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(
            f"Invalid format: {raw!r}. Expected a validator index (e.g. 1234) "
            f"or a public key (0x followed by 96 hex characters)"
        )


class ResolutionFailed(RegistryError):
    """The beacon node could not confirm the validator."""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Could not resolve validator {raw}: {reason}")


class DuplicateValidator(RegistryError):
    """The validator is already tracked, possibly under another input form."""

    def __init__(self, raw: str, existing_id: str):
        self.raw = raw
        self.existing_id = existing_id
        if raw == existing_id:
            message = f"Validator {existing_id} is already tracked"
        else:
            message = f"Validator {raw} is already tracked as {existing_id}"
        super().__init__(message)
