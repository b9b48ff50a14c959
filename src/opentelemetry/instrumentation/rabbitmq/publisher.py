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
from functools import lru_cache
from logging import getLogger
from typing import Dict, Optional

import aiormq
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractMessage

from opentelemetry import context as context_api
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.instrumentation.rabbitmq.attributes import (
    get_publish_attributes,
)
from opentelemetry.instrumentation.rabbitmq.config import PublisherConfig
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


def default_publish_span_name(exchange: str, routing_key: str) -> str:
    if exchange:
        return f"{exchange} publish"
    if routing_key:
        return f"{routing_key} publish"
    return "rabbitmq publish"


async def _get_exchange(
    channel: AbstractChannel, exchange: str
) -> AbstractExchange:
    if not exchange:
        return channel.default_exchange
    return await channel.get_exchange(exchange, ensure=False)


class Publisher:
    """Publishes aio-pika messages inside a ``PRODUCER`` span.

    The span context is written into the message headers before the message
    is handed to the exchange, so consumers can continue the trace.
    """

    def __init__(self, config: Optional[PublisherConfig] = None):
        config = config or PublisherConfig()
        self._tracer = config.tracer or get_tracer(config.tracer_provider)
        self._propagator = config.propagator or DEFAULT_PROPAGATOR
        self._span_name_formatter = (
            config.span_name_formatter or default_publish_span_name
        )
        self._attribute_enricher = config.attribute_enricher

    def _get_span_name(self, exchange: str, routing_key: str) -> str:
        try:
            return self._span_name_formatter(exchange, routing_key)
        except Exception as formatter_exception:  # pylint: disable=W0703
            _LOG.exception(formatter_exception)
            return default_publish_span_name(exchange, routing_key)

    def _get_attributes(
        self,
        exchange: str,
        routing_key: str,
        message: AbstractMessage,
        context: Context,
    ) -> Dict[str, AttributeValue]:
        attributes = get_publish_attributes(exchange, routing_key, message)
        if self._attribute_enricher is None:
            return attributes
        try:
            extra = self._attribute_enricher(
                context, exchange, routing_key, message
            )
        except Exception as enricher_exception:  # pylint: disable=W0703
            _LOG.exception(enricher_exception)
            return attributes
        for key, value in (extra or {}).items():
            attributes.setdefault(key, value)
        return attributes

    def _get_publish_span(
        self,
        exchange: str,
        routing_key: str,
        message: AbstractMessage,
        context: Optional[Context],
    ) -> Span:
        return self._tracer.start_span(
            self._get_span_name(exchange, routing_key),
            context=context,
            kind=SpanKind.PRODUCER,
            attributes=self._get_attributes(
                exchange,
                routing_key,
                message,
                context_api.get_current() if context is None else context,
            ),
        )

    async def _publish(
        self,
        channel: AbstractChannel,
        exchange: str,
        routing_key: str,
        message: AbstractMessage,
        mandatory: bool,
        immediate: bool,
        timeout: Optional[float],
        context: Optional[Context],
    ) -> Optional[aiormq.abc.ConfirmationFrameType]:
        if not is_instrumentation_enabled():
            target = await _get_exchange(channel, exchange)
            return await target.publish(
                message,
                routing_key,
                mandatory=mandatory,
                immediate=immediate,
                timeout=timeout,
            )

        span = self._get_publish_span(exchange, routing_key, message, context)
        span_context = trace.set_span_in_context(span, context)
        token = context_api.attach(span_context)
        try:
            self._propagator.inject_to_publishing(message, span_context)
            target = await _get_exchange(channel, exchange)
            confirmation = await target.publish(
                message,
                routing_key,
                mandatory=mandatory,
                immediate=immediate,
                timeout=timeout,
            )
        except Exception as exception:
            set_span_status(span, exception)
            raise
        else:
            set_span_status(span)
        finally:
            context_api.detach(token)
            span.end()
        return confirmation

    async def publish(
        self,
        channel: AbstractChannel,
        exchange: str,
        routing_key: str,
        message: AbstractMessage,
        mandatory: bool = True,
        immediate: bool = False,
        timeout: Optional[float] = None,
        context: Optional[Context] = None,
    ) -> None:
        await self._publish(
            channel,
            exchange,
            routing_key,
            message,
            mandatory,
            immediate,
            timeout,
            context,
        )

    async def publish_with_confirm(
        self,
        channel: AbstractChannel,
        exchange: str,
        routing_key: str,
        message: AbstractMessage,
        mandatory: bool = True,
        immediate: bool = False,
        timeout: Optional[float] = None,
        context: Optional[Context] = None,
    ) -> Optional[aiormq.abc.ConfirmationFrameType]:
        """Same as :meth:`publish` but returns the broker confirmation.

        ``None`` is returned when the channel was opened without
        publisher confirms.
        """
        return await self._publish(
            channel,
            exchange,
            routing_key,
            message,
            mandatory,
            immediate,
            timeout,
            context,
        )


@lru_cache(maxsize=None)
def get_default_publisher() -> Publisher:
    return Publisher()


async def publish(
    channel: AbstractChannel,
    exchange: str,
    routing_key: str,
    message: AbstractMessage,
    mandatory: bool = True,
    immediate: bool = False,
    timeout: Optional[float] = None,
    context: Optional[Context] = None,
) -> None:
    await get_default_publisher().publish(
        channel,
        exchange,
        routing_key,
        message,
        mandatory=mandatory,
        immediate=immediate,
        timeout=timeout,
        context=context,
    )


async def publish_with_confirm(
    channel: AbstractChannel,
    exchange: str,
    routing_key: str,
    message: AbstractMessage,
    mandatory: bool = True,
    immediate: bool = False,
    timeout: Optional[float] = None,
    context: Optional[Context] = None,
) -> Optional[aiormq.abc.ConfirmationFrameType]:
    return await get_default_publisher().publish_with_confirm(
        channel,
        exchange,
        routing_key,
        message,
        mandatory=mandatory,
        immediate=immediate,
        timeout=timeout,
        context=context,
    )
