"""
Interceptor - executes one client call.

For every call the interceptor:
1. builds the ActionContext from the method descriptor and arguments
2. runs the pre-send filters (which may short-circuit)
3. dispatches through the transport, racing the cancellation token
4. runs the post-receive filters and checks the status
5. converts the response into the declared return value

Calls shaped NONE or VALUE run the pipeline to completion before
returning; DEFERRED calls hand back a coroutine and surface their errors
only when awaited.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Tuple

from .config import ClientConfig
from .context import ActionContext, ResponseDescriptor, build_context
from .contract.metadata import MethodDescriptor, ReturnShape
from .faults import (
    CancelledError,
    ConfigError,
    DeserializationError,
    Fault,
    ResponseError,
    TransportError,
)

logger = logging.getLogger("talon.interceptor")


class ApiInterceptor:
    """
    Runs calls of any interface against one ClientConfig.

    Stateless between calls: everything a call owns lives in its
    ActionContext, so one interceptor safely serves concurrent calls.

    Args:
        config: Client configuration
    """

    __slots__ = ("config",)

    def __init__(self, config: ClientConfig):
        if config is None:
            raise ConfigError("ApiInterceptor requires a ClientConfig", code="CONFIG_MISSING", key="config")
        self.config = config

    def intercept(self, method: MethodDescriptor, arguments: Tuple[Any, ...]) -> Any:
        """
        Execute ``method`` with ``arguments`` according to its return shape.

        Returns:
            None for NONE, the converted value for VALUE, a coroutine for
            DEFERRED
        """
        if not isinstance(method, MethodDescriptor):
            raise ConfigError(
                f"intercept() expects a MethodDescriptor, got {type(method).__name__}",
                code="DESCRIPTOR_MISMATCH",
            )

        if method.return_shape is ReturnShape.DEFERRED:
            return self.invoke(method, arguments)

        result = self._run_blocking(method, arguments)
        if method.return_shape is ReturnShape.NONE:
            return None
        return result

    def _run_blocking(self, method: MethodDescriptor, arguments: Tuple[Any, ...]) -> Any:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None and loop.is_running():
            raise ConfigError(
                f"Cannot call blocking member '{method.qualname}' inside a running "
                f"event loop. Declare it 'async def' and await it instead.",
                code="BLOCKING_CALL_IN_EVENT_LOOP",
            )
        return asyncio.run(self.invoke(method, arguments))

    async def invoke(self, method: MethodDescriptor, arguments: Tuple[Any, ...]) -> Any:
        """Run the full pipeline for one call and return the converted result."""
        context = build_context(method, arguments, self.config)
        token = context.token
        filters = self.config.filters

        token.raise_if_cancelled(method.name)

        short_circuited = await filters.run_before_send(context)
        token.raise_if_cancelled(method.name)

        if short_circuited:
            logger.debug(f"{method.qualname}: short-circuited by a filter")
        else:
            context.response = await self._dispatch(context)

        token.raise_if_cancelled(method.name)
        await filters.run_after_receive(context)

        response = context.response
        if self.config.raise_for_status and not response.is_success:
            raise ResponseError(
                f"{context.request.method} {context.request.full_url} "
                f"returned {response.status}",
                status=response.status,
                response=response,
            )

        return self._convert(context)

    async def _dispatch(self, context: ActionContext) -> ResponseDescriptor:
        """Send through the transport unless the token fires first."""
        request = context.request
        token = context.token
        loop = asyncio.get_running_loop()
        fired: asyncio.Future = loop.create_future()

        def on_cancel() -> None:
            # A token fired from another thread may reach here after
            # asyncio.run() has closed the loop; the call is over by then.
            if loop.is_closed():
                return
            try:
                loop.call_soon_threadsafe(_resolve_future, fired)
            except RuntimeError:
                logger.debug(f"{context.method.qualname}: token fired after the loop closed")

        remove_callback = token.add_callback(on_cancel)
        send = asyncio.ensure_future(self.config.transport.send(request, token))
        try:
            done, _ = await asyncio.wait({send, fired}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send.cancel()
            raise
        finally:
            remove_callback()
            if not fired.done():
                fired.cancel()

        if send not in done:
            send.cancel()
            await asyncio.gather(send, return_exceptions=True)
            logger.debug(f"{context.method.qualname}: cancelled during dispatch")
            raise CancelledError(context.method.name, reason=token.reason)

        try:
            response = send.result()
        except Fault:
            raise
        except Exception as e:
            raise TransportError(
                f"{type(e).__name__}: {e}",
                method=request.method,
                url=request.full_url,
            ) from e

        if not isinstance(response, ResponseDescriptor):
            raise TransportError(
                f"transport returned {type(response).__name__}, expected ResponseDescriptor",
                method=request.method,
                url=request.full_url,
            )
        return response

    def _convert(self, context: ActionContext) -> Any:
        method = context.method
        target = method.return_type
        if method.return_shape is ReturnShape.NONE or target is None or target is type(None):
            return None
        if target is ResponseDescriptor:
            return context.response

        try:
            return self.config.codec.deserialize(context.response.content, target)
        except Fault:
            raise
        except Exception as e:
            logger.warning(f"{method.qualname}: could not decode response: {e}")
            raise DeserializationError(str(e), target=target) from e

    def __repr__(self) -> str:
        return f"<ApiInterceptor host={self.config.http_host!r} filters={len(self.config.filters)}>"


def _resolve_future(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)
