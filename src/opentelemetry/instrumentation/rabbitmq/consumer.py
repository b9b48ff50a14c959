# Copyright The OpenTelemetry Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
import asyncio
from functools import lru_cache
from logging import getLogger
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from aio_pika.abc import (
    AbstractChannel,
    AbstractIncomingMessage,
    AbstractQueueIterator,
)

from opentelemetry import context as context_api
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.instrumentation.rabbitmq.attributes import (
    get_consume_attributes,
)
from opentelemetry.instrumentation.rabbitmq.config import ConsumerConfig
from opentelemetry.instrumentation.rabbitmq.exceptions import ConsumeError
from opentelemetry.instrumentation.rabbitmq.propagation import (
    DEFAULT_PROPAGATOR,
)
from opentelemetry.instrumentation.rabbitmq.utils import (
    get_tracer,
    set_span_status,
)
from opentelemetry.instrumentation.utils import is_instrumentation_enabled
from opentelemetry.trace import Span, SpanKind
from opentelemetry.util.types import AttributeValue

_LOG = getLogger(__name__)

MessageHandler = Callable[[AbstractIncomingMessage], Awaitable[Any]]


def default_consume_span_name(
    queue_name: str, message: AbstractIncomingMessage
) -> str:
    if queue_name:
        return f"{queue_name} receive"
    routing_key = getattr(message, "routing_key", None)
    if routing_key:
        return f"{routing_key} receive"
    return "rabbitmq receive"


class Consumer:
    """Runs message handlers inside ``CONSUMER`` spans.

    The span is parented to the trace context found in the message headers.
    Unless the delivery was auto-acknowledged, the message is acked after a
    successful handler call and nacked with requeue after a failing one,
    before the span ends.
    """

    def __init__(self, config: Optional[ConsumerConfig] = None):
        config = config or ConsumerConfig()
        self._tracer = config.tracer or get_tracer(config.tracer_provider)
        self._propagator = config.propagator or DEFAULT_PROPAGATOR
        self._span_name_formatter = (
            config.span_name_formatter or default_consume_span_name
        )
        self._attribute_enricher = config.attribute_enricher

    def _get_span_name(
        self, queue_name: str, message: AbstractIncomingMessage
    ) -> str:
        try:
            return self._span_name_formatter(queue_name, message)
        except Exception as formatter_exception:  # pylint: disable=W0703
            _LOG.exception(formatter_exception)
            return default_consume_span_name(queue_name, message)

    def _get_attributes(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        context: Context,
    ) -> Dict[str, AttributeValue]:
        attributes = get_consume_attributes(queue_name, message)
        if self._attribute_enricher is None:
            return attributes
        try:
            extra = self._attribute_enricher(context, queue_name, message)
        except Exception as enricher_exception:  # pylint: disable=W0703
            _LOG.exception(enricher_exception)
            return attributes
        for key, value in (extra or {}).items():
            attributes.setdefault(key, value)
        return attributes

    def wrap_delivery(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        context: Optional[Context] = None,
    ) -> Tuple[Context, Span]:
        """Starts the consumer span for ``message`` without running anything.

        Returns the context carrying the new span together with the span;
        ending the span is left to the caller.
        """
        ctx = self._propagator.extract_from_delivery(message, context)
        span = self._tracer.start_span(
            self._get_span_name(queue_name, message),
            context=ctx,
            kind=SpanKind.CONSUMER,
            attributes=self._get_attributes(queue_name, message, ctx),
        )
        return trace.set_span_in_context(span, ctx), span

    async def _invoke(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        handler: Optional[MessageHandler],
    ) -> Optional[Exception]:
        if handler is None:
            return None
        try:
            await handler(message)
        except Exception as handler_exception:  # pylint: disable=W0703
            _LOG.warning(
                "Handler failed to process message from %s: %s",
                queue_name or getattr(message, "routing_key", ""),
                handler_exception,
            )
            return handler_exception
        return None

    async def _settle(
        self,
        span: Optional[Span],
        message: AbstractIncomingMessage,
        error: Optional[Exception],
    ) -> Optional[Exception]:
        if error is not None:
            try:
                await message.nack(requeue=True)
            except Exception as nack_exception:  # pylint: disable=W0703
                _LOG.warning("Failed to nack message: %s", nack_exception)
                if span is not None:
                    span.record_exception(nack_exception)
            return error
        try:
            await message.ack()
        except Exception as ack_exception:  # pylint: disable=W0703
            _LOG.warning("Failed to ack message: %s", ack_exception)
            return ack_exception
        return None

    async def _process_delivery(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        handler: Optional[MessageHandler],
        auto_ack: bool,
        context: Optional[Context],
    ) -> None:
        if not is_instrumentation_enabled():
            error = await self._invoke(queue_name, message, handler)
            if not auto_ack:
                await self._settle(None, message, error)
            return

        ctx, span = self.wrap_delivery(queue_name, message, context)
        token = context_api.attach(ctx)
        try:
            error = await self._invoke(queue_name, message, handler)
            if not auto_ack:
                error = await self._settle(span, message, error)
            set_span_status(span, error)
        finally:
            context_api.detach(token)
            span.end()

    async def process_delivery(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        handler: Optional[MessageHandler],
        auto_ack: bool = False,
        context: Optional[Context] = None,
    ) -> None:
        """Traces a single message the caller already received.

        With ``auto_ack=False`` the message is acked or nacked depending on
        the handler outcome; pass ``auto_ack=True`` when the message was
        consumed with ``no_ack`` or is settled by the caller.
        """
        await self._process_delivery(
            queue_name, message, handler, auto_ack, context
        )

    async def _consume_loop(
        self,
        iterator: AbstractQueueIterator,
        queue_name: str,
        handler: Optional[MessageHandler],
        auto_ack: bool,
        context: Optional[Context],
    ) -> None:
        try:
            async for message in iterator:
                await self._process_delivery(
                    queue_name, message, handler, auto_ack, context
                )
        finally:
            _LOG.debug("Delivery stream for %s closed", queue_name)
            await iterator.close()

    async def consume_with_handler(
        self,
        channel: AbstractChannel,
        queue_name: str,
        handler: Optional[MessageHandler],
        consumer_tag: Optional[str] = None,
        auto_ack: bool = False,
        exclusive: bool = False,
        arguments: Optional[Dict[str, Any]] = None,
        context: Optional[Context] = None,
    ) -> "asyncio.Task[None]":
        """Starts consuming ``queue_name`` and returns the background task.

        Deliveries are handled one at a time, in the order the broker sends
        them. The task finishes once the consumer or its channel is closed;
        cancel it to stop consuming earlier.

        Raises:
            ConsumeError: the broker refused to start the consumer.
        """
        try:
            queue = await channel.get_queue(queue_name, ensure=False)
            iterator = queue.iterator(
                no_ack=auto_ack,
                exclusive=exclusive,
                arguments=arguments,
                consumer_tag=consumer_tag,
            )
        except Exception as exception:
            raise ConsumeError("failed to start consuming") from exception

        try:
            await iterator.consume()
        except Exception as exception:
            try:
                await iterator.close()
            except Exception as close_exception:  # pylint: disable=W0703
                _LOG.warning(
                    "Failed to close iterator for %s: %s",
                    queue_name,
                    close_exception,
                )
            raise ConsumeError("failed to start consuming") from exception

        _LOG.debug("Started consuming from %s", queue_name)
        return asyncio.ensure_future(
            self._consume_loop(
                iterator, queue_name, handler, auto_ack, context
            )
        )


@lru_cache(maxsize=None)
def get_default_consumer() -> Consumer:
    return Consumer()


async def consume_with_handler(
    channel: AbstractChannel,
    queue_name: str,
    handler: Optional[MessageHandler],
    consumer_tag: Optional[str] = None,
    auto_ack: bool = False,
    exclusive: bool = False,
    arguments: Optional[Dict[str, Any]] = None,
    context: Optional[Context] = None,
) -> "asyncio.Task[None]":
    return await get_default_consumer().consume_with_handler(
        channel,
        queue_name,
        handler,
        consumer_tag=consumer_tag,
        auto_ack=auto_ack,
        exclusive=exclusive,
        arguments=arguments,
        context=context,
    )


async def process_delivery(
    queue_name: str,
    message: AbstractIncomingMessage,
    handler: Optional[MessageHandler],
    auto_ack: bool = False,
    context: Optional[Context] = None,
) -> None:
    await get_default_consumer().process_delivery(
        queue_name, message, handler, auto_ack=auto_ack, context=context
    )


def wrap_delivery(
    queue_name: str,
    message: AbstractIncomingMessage,
    context: Optional[Context] = None,
) -> Tuple[Context, Span]:
    return get_default_consumer().wrap_delivery(queue_name, message, context)
