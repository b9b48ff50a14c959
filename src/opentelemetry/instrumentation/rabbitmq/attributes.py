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
from typing import Any, Dict, Optional

from opentelemetry.semconv.trace import (
    MessagingOperationValues,
    SpanAttributes,
)

# Pre-1.17 messaging keys. Current semconv releases renamed or dropped
# them, and consumers of these spans match on the exact names.
MESSAGING_DESTINATION = "messaging.destination"
MESSAGING_DESTINATION_KIND = "messaging.destination_kind"
MESSAGING_RABBITMQ_ROUTING_KEY = "messaging.rabbitmq.routing_key"
MESSAGING_MESSAGE_ID = "messaging.message_id"
MESSAGING_CONVERSATION_ID = "messaging.conversation_id"

SYSTEM_RABBITMQ = "rabbitmq"
DESTINATION_KIND_QUEUE = "queue"
DESTINATION_KIND_TOPIC = "topic"


def _string_field(message: Any, name: str) -> Optional[str]:
    value = getattr(message, name, None)
    if not value:
        return None
    return str(value)


def _add_message_ids(attributes: Dict[str, str], message: Any) -> None:
    message_id = _string_field(message, "message_id")
    if message_id:
        attributes[MESSAGING_MESSAGE_ID] = message_id
    correlation_id = _string_field(message, "correlation_id")
    if correlation_id:
        attributes[MESSAGING_CONVERSATION_ID] = correlation_id


def get_common_attributes(exchange: str, routing_key: str) -> Dict[str, str]:
    """Destination attributes shared by every outgoing message.

    A named exchange is reported as a ``topic`` destination, the default
    exchange as a ``queue`` destination addressed by the routing key.
    """
    attributes = {SpanAttributes.MESSAGING_SYSTEM: SYSTEM_RABBITMQ}
    if exchange:
        attributes[MESSAGING_DESTINATION] = exchange
        attributes[MESSAGING_DESTINATION_KIND] = DESTINATION_KIND_TOPIC
    else:
        attributes[MESSAGING_DESTINATION_KIND] = DESTINATION_KIND_QUEUE
        if routing_key:
            attributes[MESSAGING_DESTINATION] = routing_key
    if routing_key:
        attributes[MESSAGING_RABBITMQ_ROUTING_KEY] = routing_key
    return attributes


def get_publish_attributes(
    exchange: str, routing_key: str, message: Any
) -> Dict[str, str]:
    attributes = get_common_attributes(exchange, routing_key)
    attributes[
        SpanAttributes.MESSAGING_OPERATION
    ] = MessagingOperationValues.PUBLISH.value
    _add_message_ids(attributes, message)
    return attributes


def get_consume_attributes(queue_name: str, message: Any) -> Dict[str, str]:
    attributes = {
        SpanAttributes.MESSAGING_SYSTEM: SYSTEM_RABBITMQ,
        MESSAGING_DESTINATION_KIND: DESTINATION_KIND_QUEUE,
        SpanAttributes.MESSAGING_OPERATION: MessagingOperationValues.RECEIVE.value,
    }
    if queue_name:
        attributes[MESSAGING_DESTINATION] = queue_name
    routing_key = _string_field(message, "routing_key")
    if routing_key:
        attributes[MESSAGING_RABBITMQ_ROUTING_KEY] = routing_key
    _add_message_ids(attributes, message)
    return attributes
