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
from typing import Callable, NamedTuple, Optional

from aio_pika.abc import AbstractIncomingMessage, AbstractMessage

from opentelemetry.context import Context
from opentelemetry.instrumentation.rabbitmq.propagation import Propagator
from opentelemetry.trace import Tracer, TracerProvider
from opentelemetry.util.types import Attributes

PublishSpanNameFormatterT = Callable[[str, str], str]
PublishAttributeEnricherT = Callable[
    [Context, str, str, AbstractMessage], Attributes
]
ConsumeSpanNameFormatterT = Callable[[str, AbstractIncomingMessage], str]
ConsumeAttributeEnricherT = Callable[
    [Context, str, AbstractIncomingMessage], Attributes
]


class PublisherConfig(NamedTuple):
    """Options for a :class:`~opentelemetry.instrumentation.rabbitmq.Publisher`.

    Every field is optional. ``tracer`` wins over ``tracer_provider``;
    without either the global tracer provider is used.
    ``span_name_formatter`` receives ``(exchange, routing_key)`` and
    ``attribute_enricher`` receives ``(context, exchange, routing_key,
    message)`` where ``context`` is the parent context of the publish span.
    """

    tracer: Optional[Tracer] = None
    tracer_provider: Optional[TracerProvider] = None
    propagator: Optional[Propagator] = None
    span_name_formatter: Optional[PublishSpanNameFormatterT] = None
    attribute_enricher: Optional[PublishAttributeEnricherT] = None


class ConsumerConfig(NamedTuple):
    """Options for a :class:`~opentelemetry.instrumentation.rabbitmq.Consumer`.

    Same fields as :class:`PublisherConfig`. ``span_name_formatter``
    receives ``(queue_name, message)``; ``attribute_enricher`` receives
    ``(context, queue_name, message)`` with the context extracted from the
    message headers, so the producer trace and baggage are visible.
    """

    tracer: Optional[Tracer] = None
    tracer_provider: Optional[TracerProvider] = None
    propagator: Optional[Propagator] = None
    span_name_formatter: Optional[ConsumeSpanNameFormatterT] = None
    attribute_enricher: Optional[ConsumeAttributeEnricherT] = None


class ChannelConfig(NamedTuple):
    publisher_config: PublisherConfig = PublisherConfig()
    consumer_config: ConsumerConfig = ConsumerConfig()


class ConnectionConfig(NamedTuple):
    channel_config: ChannelConfig = ChannelConfig()
