"""WebSocket authentication for ride rooms: JWT querystring or session cookie."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

User = get_user_model()
logger = logging.getLogger(__name__)


@database_sync_to_async
def get_user_for_token(raw_token: str):
    """Resolve an access token to an active user, or AnonymousUser."""
    try:
        access = AccessToken(raw_token)
        return User.objects.get(id=access["user_id"], is_active=True)
    except (TokenError, KeyError, User.DoesNotExist) as exc:
        logger.debug("Rejected WebSocket token: %s", exc)
        return AnonymousUser()


class JWTOrCookieAuthMiddleware(BaseMiddleware):
    """
    Authenticate ride room connections using either:
    1. JWT access token in the querystring (``?token=...``), used by the app
    2. The Django session, populated by AuthMiddlewareStack, for browsers

    A token, when present, wins over the session.
    """

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())
        token_list = params.get("token")

        if token_list:
            scope["user"] = await get_user_for_token(token_list[0])
        elif "user" not in scope:
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)
