"""Domain errors shared by the services, the API layer and the client adapter."""


class TripBankError(Exception):
    """Base class for every failure the app surfaces to a user."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def extra(self) -> dict:
        return {}


class UnauthorizedError(TripBankError):
    """A role gate failed; `detail` is the human-readable reason."""

    status_code = 403


class NotFoundError(TripBankError):
    status_code = 404


class ConflictError(TripBankError):
    status_code = 409


class InvalidRequestError(TripBankError):
    status_code = 422


class StorageLimitError(TripBankError):
    """Upload would exceed the user's tier cap."""

    status_code = 413

    def __init__(self, detail: str, required_bytes: int, remaining_bytes: int, upgrade: bool = False):
        super().__init__(detail)
        self.required_bytes = required_bytes
        self.remaining_bytes = remaining_bytes
        self.upgrade = upgrade

    def extra(self) -> dict:
        return {
            "required_bytes": self.required_bytes,
            "remaining_bytes": self.remaining_bytes,
            "upgrade": self.upgrade,
        }


class TransientRPCError(TripBankError):
    """Network or server-side failure worth retrying."""

    status_code = 503
