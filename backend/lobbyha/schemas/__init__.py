from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CamelModel(BaseModel):
    """Base model with camelCase aliases matching frontend TypeScript types."""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=lambda s: "".join(
            w if i == 0 else w.capitalize() for i, w in enumerate(s.split("_"))
        ),
        from_attributes=True,
    )


# --- Admin ---


class LoginRequest(CamelModel):
    password: str = ""


class LoginResponse(CamelModel):
    success: bool
    session_id: str
    is_default_password: bool


class ChangePasswordRequest(CamelModel):
    current_password: str = ""
    new_password: str = ""


class ConfigView(CamelModel):
    ha_url: str
    ha_token: str
    port: str
    log_level: str
    allowed_entities: str


class ConfigResponse(CamelModel):
    success: bool = True
    config: ConfigView
    missing: list[str]
    locked_fields: dict[str, str]


class UpdateConfigRequest(CamelModel):
    ha_url: str | None = None
    ha_token: str | None = None
    port: int | str | None = None
    log_level: str | None = None
    allowed_entities: str | list[str] | None = None


class UpdateConfigResponse(CamelModel):
    success: bool = True
    message: str
    locked_fields: dict[str, str]
    restart_required: bool


# --- Guest ---


class GuestPinModel(CamelModel):
    pin: str
    permanent: bool = False


class VerifyPinRequest(CamelModel):
    pin: str | None = None


class VerifyPinResponse(CamelModel):
    success: bool
    guest_session_id: str
    permanent: bool


class GuestStatusResponse(CamelModel):
    pin_enabled: bool
    authenticated: bool


class GuestSettingsResponse(CamelModel):
    success: bool = True
    pin_enabled: bool
    pins: list[GuestPinModel]


class UpdateGuestSettingsRequest(CamelModel):
    pin_enabled: bool | None = None
    # Legacy clients send plain strings.
    pins: list[GuestPinModel | str | int] | None = None


# --- Setup ---


class SetupRequest(CamelModel):
    ha_url: str = ""
    ha_token: str = ""
    admin_password: str | None = None
    pin_enabled: bool | None = None
    pins: list[GuestPinModel | str | int] | None = None


class ConnectionTestRequest(CamelModel):
    ha_url: str | None = None
    ha_token: str | None = None
