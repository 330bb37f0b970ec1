"""Signed-in user session, cached in the shared namespace."""

import logging
from typing import Optional

from pydantic import ValidationError

from models import AppUser, AuthResponse
from shared_store import SharedDefaults
from tuck_api import TuckServerAPI

log = logging.getLogger(__name__)

CURRENT_USER_KEY = "currentUser"
MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    pass


class InvalidEmailError(AuthError):
    def __str__(self):
        return "Please enter a valid email."


class WeakPasswordError(AuthError):
    def __str__(self):
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."


class AuthStore:
    def __init__(self, api: TuckServerAPI, defaults: SharedDefaults):
        self.api = api
        self.defaults = defaults
        self.user: Optional[AppUser] = None

    @property
    def is_logged_in(self) -> bool:
        return self.api.is_logged_in

    def restore_session(self) -> Optional[AppUser]:
        data = self.defaults.get_data(CURRENT_USER_KEY)
        self.user = None
        if data:
            try:
                self.user = AppUser.model_validate_json(data)
            except ValidationError:
                log.warning("Cached user is unreadable, treating session as signed out")
        return self.user

    async def sign_in(self, email: str, password: str) -> AppUser:
        return self._remember(await self.api.login(email, password))

    async def sign_up(self, email: str, password: str) -> AppUser:
        if "@" not in email or "." not in email:
            raise InvalidEmailError()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise WeakPasswordError()
        return self._remember(await self.api.register(email, password))

    def sign_out(self) -> None:
        self.user = None
        self.defaults.remove(CURRENT_USER_KEY)
        self.api.logout()

    def _remember(self, response: AuthResponse) -> AppUser:
        self.user = AppUser(id=str(response.user.id), email=response.user.email)
        self.defaults.set_data(CURRENT_USER_KEY, self.user.model_dump_json(by_alias=True).encode("utf-8"))
        log.info("Signed in as %s", self.user.email)
        return self.user
