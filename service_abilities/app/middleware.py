"""
FastAPI integration: error rendering and per-request authorization.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from shared.errors import AbilityException, AccessDenied
from shared.logging import clear_context, get_logger, set_actor_context, set_request_id
from .ability import Ability, reject_removed_options


logger = get_logger("abilities.middleware")

AbilityFactory = Callable[[Request], Union[Ability, Awaitable[Ability]]]


def install_exception_handlers(app: FastAPI):
    """Render library errors with the standard error response body."""

    @app.exception_handler(AccessDenied)
    async def access_denied_handler(request: Request, exc: AccessDenied):
        logger.warning(
            "Access denied",
            path=request.url.path,
            action=exc.action,
            details=exc.details
        )
        return JSONResponse(status_code=403, content=exc.to_response().model_dump())

    @app.exception_handler(AbilityException)
    async def ability_exception_handler(request: Request, exc: AbilityException):
        logger.error(
            "Ability layer error",
            code=exc.code,
            message=exc.message,
            details=exc.details
        )
        metrics = getattr(request.app.state, "metrics", None)
        if metrics is not None:
            metrics.record_error(exc.code.lower())
        status_code = 404 if exc.code == "RECORD_NOT_FOUND" else 500
        return JSONResponse(status_code=status_code, content=exc.to_response().model_dump())


class AbilityGuard:
    """Builds the request's ability once and exposes authorization dependencies.

    ``ability_factory`` receives the request and returns the ability of the
    actor behind it (for instance from ``request.state.user``). The ability is
    cached on ``request.state.ability`` for the rest of the request.
    """

    def __init__(self, ability_factory: AbilityFactory, actor_header: Optional[str] = "X-Actor-Id"):
        self.ability_factory = ability_factory
        self.actor_header = actor_header

    async def current_ability(self, request: Request) -> Ability:
        ability = getattr(request.state, "ability", None)
        if ability is not None:
            return ability

        clear_context()
        set_request_id(request.headers.get("X-Request-Id"))
        if self.actor_header:
            set_actor_context(request.headers.get(self.actor_header))

        ability = self.ability_factory(request)
        if inspect.isawaitable(ability):
            ability = await ability
        request.state.ability = ability
        return ability

    def require(self, action: str, subject: Any, attribute: Optional[str] = None, **options):
        """Dependency that authorizes ``action`` on ``subject`` before the handler runs.

        ``subject`` may be a callable taking the request, for subjects that
        depend on path parameters.
        """
        reject_removed_options(options)

        async def dependency(request: Request, ability: Ability = Depends(self.current_ability)) -> Any:
            target = subject(request) if callable(subject) and not isinstance(subject, type) else subject
            return ability.authorize(action, target, attribute)

        return dependency
