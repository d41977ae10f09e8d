"""Authentication module for the gateway."""

from scriptor.gateway.auth.middleware import AuthContext, CurrentUser, get_current_user

__all__ = ["AuthContext", "CurrentUser", "get_current_user"]
