"""Revalidate an optimistically rehydrated session against the API."""

import logging
from enum import Enum

from altq.auth.errors import ChannelError, InvalidCredential, Unauthenticated
from altq.session.store import SessionStore
from altq.tools.auth_api import AuthApi

logger = logging.getLogger(__name__)


class RevalidationStatus(str, Enum):
    NO_SESSION = "no_session"
    CONFIRMED = "confirmed"
    CLEARED = "cleared"
    KEPT_OFFLINE = "kept_offline"


async def revalidate_session(store: SessionStore, api: AuthApi) -> RevalidationStatus:
    """Confirm the stored token is still accepted and refresh the identity.

    A rejected token clears the session. A transport failure keeps the
    optimistic session so an offline reload does not sign the user out.
    """
    session = store.get()
    if session is None:
        return RevalidationStatus.NO_SESSION
    try:
        identity = await api.get_profile(session.token)
    except (Unauthenticated, InvalidCredential):
        logger.info("Stored session rejected by the API, signing out")
        store.clear()
        return RevalidationStatus.CLEARED
    except ChannelError:
        logger.warning("Could not revalidate session, keeping it for now")
        return RevalidationStatus.KEPT_OFFLINE
    store.update(identity)
    return RevalidationStatus.CONFIRMED
