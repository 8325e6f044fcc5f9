"""
Redirect capture for the on-behalf-of flow.

``AuthCodeCallback`` exposes a FastAPI router that receives the provider's
redirect and hands exactly one ``AuthCodeResponse`` to whoever is waiting
for it. Running the web server is left to the caller.
"""

import asyncio
import logging
from concurrent.futures import Future

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import HTMLResponse

from agent_auth.exceptions import MissingAuthorizationCode
from agent_auth.models import AuthCodeResponse

logger = logging.getLogger(__name__)

SUCCESS_PAGE = "<h1>Login Successful!</h1><p>You can close this window.</p>"


class AuthCodeCallback:
    """
    One-shot receiver for an authorization redirect.

    A redirect without ``code`` is answered with 400 and does not resolve
    the pending result. Only the first valid redirect is kept.
    """

    def __init__(self, path: str = "/callback"):
        self.path = path
        # concurrent.futures.Future so the result can cross event loops/threads
        self._future: Future[AuthCodeResponse] = Future()
        self.router = APIRouter()
        self.router.add_api_route(
            path,
            self.handle_callback,
            methods=["GET"],
            response_class=HTMLResponse,
        )

    async def handle_callback(
        self,
        code: str | None = None,
        state: str | None = None,
        session_state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> HTMLResponse:
        if error:
            logger.warning(f"Authorization redirect carried an error: {error}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Authorization failed: {error_description or error}",
            )

        try:
            response = AuthCodeResponse.from_query_params(
                {"code": code, "state": state, "session_state": session_state}
            )
        except MissingAuthorizationCode as e:
            logger.warning("Authorization redirect received without a code")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        if self._future.done():
            logger.debug("Ignoring additional authorization redirect")
        else:
            self._future.set_result(response)
            logger.info("Authorization code received")

        return HTMLResponse(SUCCESS_PAGE)

    @property
    def received(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> AuthCodeResponse:
        """Block until the redirect arrives (or ``timeout`` elapses)."""
        return self._future.result(timeout=timeout)

    async def wait_for_code(self, timeout: float | None = None) -> AuthCodeResponse:
        """
        Await the redirect from async code.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        return await asyncio.wait_for(asyncio.shield(asyncio.wrap_future(self._future)), timeout)
