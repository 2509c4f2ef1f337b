"""Error taxonomy shared by the guards, the REST proxy and the relay."""

from __future__ import annotations


class LobbyError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"success": False, "error": self.message}


class AuthenticationFailure(LobbyError):
    """Missing, unknown or expired session, or a wrong password/PIN."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated", pin_required: bool = False) -> None:
        super().__init__(message)
        self.pin_required = pin_required

    def to_dict(self) -> dict[str, object]:
        d = super().to_dict()
        if self.pin_required:
            d["pinRequired"] = True
        return d


class UpstreamUnreachable(LobbyError):
    status_code = 502


class ConfigurationIncomplete(LobbyError):
    status_code = 503

    def __init__(self, message: str = "Home Assistant is not configured") -> None:
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        d = super().to_dict()
        d["needsSetup"] = True
        return d
