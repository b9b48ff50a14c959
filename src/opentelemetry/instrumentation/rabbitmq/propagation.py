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
from typing import Any, Dict, List, Optional

from opentelemetry import context as context_api
from opentelemetry import propagate
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import CarrierT, Getter, Setter

HeadersT = Dict[str, Any]


class HeaderCarrier:
    """Text view over an AMQP header table.

    Only string values are visible; anything else reads as ``""``.
    """

    def __init__(self, headers: HeadersT):
        self._headers = headers

    def get(self, key: str) -> str:
        value = self._headers.get(key)
        if isinstance(value, str):
            return value
        return ""

    def set(self, key: str, value: str) -> None:
        self._headers[key] = value

    def keys(self) -> List[str]:
        return list(self._headers.keys())


class HeaderGetter(Getter):  # type: ignore
    def get(self, carrier: CarrierT, key: str) -> Optional[List[str]]:
        if carrier is None:
            return None
        value = HeaderCarrier(carrier).get(key)
        if not value:
            return None
        return [value]

    def keys(self, carrier: CarrierT) -> List[str]:
        if carrier is None:
            return []
        return HeaderCarrier(carrier).keys()


class HeaderSetter(Setter):  # type: ignore
    def set(self, carrier: CarrierT, key: str, value: str) -> None:
        if carrier is None or key is None:
            return
        HeaderCarrier(carrier).set(key, value)


_header_getter = HeaderGetter()
_header_setter = HeaderSetter()


def _context_or_current(context: Optional[Context]) -> Context:
    if context is None:
        return context_api.get_current()
    return context


class Propagator:
    """Moves trace context in and out of RabbitMQ message headers.

    The wire format is whatever the global text map propagator writes,
    ``traceparent``/``tracestate`` and ``baggage`` unless configured
    otherwise through ``OTEL_PROPAGATORS``.
    """

    def inject_to_publishing(
        self, message: Any, context: Optional[Context] = None
    ) -> None:
        if message.headers is None:
            message.headers = {}
        self.inject_to_headers(message.headers, context)

    def extract_from_delivery(
        self, message: Any, context: Optional[Context] = None
    ) -> Context:
        return self.extract_from_headers(
            getattr(message, "headers", None), context
        )

    def inject_to_headers(
        self, headers: Optional[HeadersT], context: Optional[Context] = None
    ) -> None:
        if headers is None:
            return
        propagate.inject(
            headers,
            context=_context_or_current(context),
            setter=_header_setter,
        )

    def extract_from_headers(
        self, headers: Optional[HeadersT], context: Optional[Context] = None
    ) -> Context:
        context = _context_or_current(context)
        if headers is None:
            return context
        return propagate.extract(
            headers, context=context, getter=_header_getter
        )


DEFAULT_PROPAGATOR = Propagator()


def inject_to_publishing(
    message: Any, context: Optional[Context] = None
) -> None:
    DEFAULT_PROPAGATOR.inject_to_publishing(message, context)


def extract_from_delivery(
    message: Any, context: Optional[Context] = None
) -> Context:
    return DEFAULT_PROPAGATOR.extract_from_delivery(message, context)


def inject_to_headers(
    headers: Optional[HeadersT], context: Optional[Context] = None
) -> None:
    DEFAULT_PROPAGATOR.inject_to_headers(headers, context)


def extract_from_headers(
    headers: Optional[HeadersT], context: Optional[Context] = None
) -> Context:
    return DEFAULT_PROPAGATOR.extract_from_headers(headers, context)
