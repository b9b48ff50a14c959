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
from logging import getLogger
from typing import Any, Dict, Optional, Tuple

import aio_pika
import aiormq
import wrapt
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractIncomingMessage,
    AbstractMessage,
)

from opentelemetry.context import Context
from opentelemetry.instrumentation.rabbitmq.config import (
    ChannelConfig,
    ConnectionConfig,
)
from opentelemetry.instrumentation.rabbitmq.consumer import (
    Consumer,
    MessageHandler,
)
from opentelemetry.instrumentation.rabbitmq.exceptions import (
    ChannelError,
    ConnectError,
)
from opentelemetry.instrumentation.rabbitmq.publisher import Publisher
from opentelemetry.trace import Span

_LOG = getLogger(__name__)


class TracedChannel(wrapt.ObjectProxy):  # pylint: disable=abstract-method
    """aio-pika channel with traced publish and consume helpers.

    Everything else is forwarded to the wrapped channel unchanged.
    """

    def __init__(
        self, channel: AbstractChannel, config: Optional[ChannelConfig] = None
    ):
        super().__init__(channel)
        config = config or ChannelConfig()
        self._self_publisher = Publisher(config.publisher_config)
        self._self_consumer = Consumer(config.consumer_config)

    async def __aenter__(self) -> "TracedChannel":
        await self.__wrapped__.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.__wrapped__.__aexit__(exc_type, exc_value, traceback)

    @property
    def publisher(self) -> Publisher:
        return self._self_publisher

    @property
    def consumer(self) -> Consumer:
        return self._self_consumer

    async def publish_with_tracing(
        self,
        exchange: str,
        routing_key: str,
        message: AbstractMessage,
        mandatory: bool = True,
        immediate: bool = False,
        timeout: Optional[float] = None,
        context: Optional[Context] = None,
    ) -> None:
        await self._self_publisher.publish(
            self.__wrapped__,
            exchange,
            routing_key,
            message,
            mandatory=mandatory,
            immediate=immediate,
            timeout=timeout,
            context=context,
        )

    async def publish_with_confirm_and_tracing(
        self,
        exchange: str,
        routing_key: str,
        message: AbstractMessage,
        mandatory: bool = True,
        immediate: bool = False,
        timeout: Optional[float] = None,
        context: Optional[Context] = None,
    ) -> Optional[aiormq.abc.ConfirmationFrameType]:
        return await self._self_publisher.publish_with_confirm(
            self.__wrapped__,
            exchange,
            routing_key,
            message,
            mandatory=mandatory,
            immediate=immediate,
            timeout=timeout,
            context=context,
        )

    async def consume_with_tracing(
        self,
        queue_name: str,
        handler: Optional[MessageHandler],
        consumer_tag: Optional[str] = None,
        auto_ack: bool = False,
        exclusive: bool = False,
        arguments: Optional[Dict[str, Any]] = None,
        context: Optional[Context] = None,
    ) -> "asyncio.Task[None]":
        return await self._self_consumer.consume_with_handler(
            self.__wrapped__,
            queue_name,
            handler,
            consumer_tag=consumer_tag,
            auto_ack=auto_ack,
            exclusive=exclusive,
            arguments=arguments,
            context=context,
        )

    async def process_delivery_with_tracing(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        handler: Optional[MessageHandler],
        auto_ack: bool = False,
        context: Optional[Context] = None,
    ) -> None:
        await self._self_consumer.process_delivery(
            queue_name, message, handler, auto_ack=auto_ack, context=context
        )

    def wrap_delivery_with_tracing(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        context: Optional[Context] = None,
    ) -> Tuple[Context, Span]:
        return self._self_consumer.wrap_delivery(queue_name, message, context)


class TracedConnection(wrapt.ObjectProxy):  # pylint: disable=abstract-method
    """aio-pika connection that hands out :class:`TracedChannel` objects."""

    def __init__(
        self,
        connection: AbstractConnection,
        config: Optional[ConnectionConfig] = None,
    ):
        super().__init__(connection)
        config = config or ConnectionConfig()
        self._self_channel_config = config.channel_config

    async def __aenter__(self) -> "TracedConnection":
        await self.__wrapped__.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.__wrapped__.__aexit__(exc_type, exc_value, traceback)

    async def channel_with_tracing(
        self, config: Optional[ChannelConfig] = None, **kwargs: Any
    ) -> TracedChannel:
        """Opens a channel and wraps it.

        ``config`` replaces the connection wide channel configuration,
        ``kwargs`` are passed to ``connection.channel()``.

        Raises:
            ChannelError: the channel could not be opened.
        """
        try:
            channel = await self.__wrapped__.channel(**kwargs)
        except Exception as exception:
            raise ChannelError("failed to create channel") from exception
        return TracedChannel(channel, config or self._self_channel_config)


async def connect(
    url: Optional[str] = None,
    config: Optional[ConnectionConfig] = None,
    **kwargs: Any,
) -> TracedConnection:
    """Connects with :func:`aio_pika.connect` and wraps the connection.

    Raises:
        ConnectError: the broker could not be reached.
    """
    try:
        connection = await aio_pika.connect(url, **kwargs)
    except Exception as exception:
        raise ConnectError("failed to connect to RabbitMQ") from exception
    _LOG.debug("Connection to RabbitMQ established")
    return TracedConnection(connection, config)


async def connect_robust(
    url: Optional[str] = None,
    config: Optional[ConnectionConfig] = None,
    **kwargs: Any,
) -> TracedConnection:
    """Same as :func:`connect` using :func:`aio_pika.connect_robust`."""
    try:
        connection = await aio_pika.connect_robust(url, **kwargs)
    except Exception as exception:
        raise ConnectError("failed to connect to RabbitMQ") from exception
    _LOG.debug("Robust connection to RabbitMQ established")
    return TracedConnection(connection, config)
