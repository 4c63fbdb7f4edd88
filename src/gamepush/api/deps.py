"""Request dependencies — reach the running AppContext from a route.

Learn: The lifespan stores the context on app.state. Routes depend on
get_context / get_dispatcher instead of touching app.state directly, so
tests can swap in their own context with app.dependency_overrides.
"""

from fastapi import Depends, HTTPException, Request

from gamepush.context import AppContext
from gamepush.dispatcher import NotificationDispatcher


def get_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return context


def get_dispatcher(context: AppContext = Depends(get_context)) -> NotificationDispatcher:
    return context.dispatcher
