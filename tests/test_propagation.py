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
from argparse import Namespace
from unittest import TestCase

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.instrumentation.rabbitmq import propagation
from opentelemetry.instrumentation.rabbitmq.propagation import (
    DEFAULT_PROPAGATOR,
    HeaderCarrier,
    HeaderGetter,
    HeaderSetter,
    Propagator,
)
from opentelemetry.test.test_base import TestBase


class TestHeaderCarrier(TestCase):
    def test_get_missing_key(self):
        self.assertEqual(HeaderCarrier({}).get("missing"), "")

    def test_set_then_get(self):
        headers = {}
        carrier = HeaderCarrier(headers)
        carrier.set("test-key", "test-value")
        self.assertEqual(carrier.get("test-key"), "test-value")
        self.assertEqual(headers, {"test-key": "test-value"})

    def test_set_overwrites(self):
        carrier = HeaderCarrier({"key": "old"})
        carrier.set("key", "new")
        self.assertEqual(carrier.get("key"), "new")

    def test_non_string_value_reads_empty(self):
        carrier = HeaderCarrier({"count": 3, "raw": b"bytes"})
        self.assertEqual(carrier.get("count"), "")
        self.assertEqual(carrier.get("raw"), "")

    def test_keys(self):
        carrier = HeaderCarrier({})
        carrier.set("test-key", "test-value")
        carrier.set("key1", "value1")
        carrier.set("key2", "value2")
        carrier.set("key1", "value3")
        self.assertCountEqual(carrier.keys(), ["test-key", "key1", "key2"])


class TestHeaderGetter(TestCase):
    def setUp(self) -> None:
        self.getter = HeaderGetter()

    def test_get_none(self) -> None:
        self.assertIsNone(self.getter.get({}, "test"))
        self.assertIsNone(self.getter.get(None, "test"))

    def test_get_value(self) -> None:
        self.assertEqual(self.getter.get({"test": "value"}, "test"), ["value"])

    def test_keys(self):
        self.assertEqual(self.getter.keys({"a": "1", "b": 2}), ["a", "b"])
        self.assertEqual(self.getter.keys(None), [])


class TestHeaderSetter(TestCase):
    def test_set(self):
        carrier = {"existing": "value"}
        HeaderSetter().set(carrier, "kk", "vv")
        self.assertEqual(carrier, {"existing": "value", "kk": "vv"})

    def test_set_none_carrier(self):
        HeaderSetter().set(None, "kk", "vv")


class TestPropagator(TestBase):
    def setUp(self):
        super().setUp()
        self.propagator = Propagator()
        self.tracer = self.tracer_provider.get_tracer(__name__)

    def test_inject_creates_headers(self):
        message = Namespace(headers=None)
        self.propagator.inject_to_publishing(message, Context())
        self.assertEqual(message.headers, {})

    def test_inject_preserves_existing_headers(self):
        message = Namespace(headers={"existing": "value"})
        with self.tracer.start_as_current_span("publish"):
            self.propagator.inject_to_publishing(message)
        self.assertEqual(message.headers["existing"], "value")
        self.assertIn("traceparent", message.headers)

    def test_inject_to_missing_headers_is_noop(self):
        self.propagator.inject_to_headers(None)

    def test_extract_without_headers_returns_context(self):
        ctx = Context()
        extracted = self.propagator.extract_from_delivery(
            Namespace(headers=None), ctx
        )
        self.assertIs(extracted, ctx)

    def test_extract_without_propagation_keys_returns_context(self):
        ctx = Context()
        extracted = self.propagator.extract_from_headers(
            {"test": "value"}, ctx
        )
        self.assertIs(extracted, ctx)

    def test_extract_malformed_traceparent(self):
        ctx = Context()
        extracted = self.propagator.extract_from_headers(
            {"traceparent": "not-a-traceparent"}, ctx
        )
        self.assertFalse(
            trace.get_current_span(extracted).get_span_context().is_valid
        )

    def test_round_trip(self):
        with self.tracer.start_as_current_span("publish") as span:
            message = Namespace(headers=None)
            self.propagator.inject_to_publishing(message)
        delivery = Namespace(headers=dict(message.headers))

        extracted = self.propagator.extract_from_delivery(delivery, Context())

        span_context = trace.get_current_span(extracted).get_span_context()
        self.assertTrue(span_context.is_remote)
        self.assertEqual(
            span_context.trace_id, span.get_span_context().trace_id
        )
        self.assertEqual(span_context.span_id, span.get_span_context().span_id)

    def test_module_functions_use_default_propagator(self):
        self.assertIsInstance(DEFAULT_PROPAGATOR, Propagator)
        message = Namespace(headers=None)
        with self.tracer.start_as_current_span("publish") as span:
            propagation.inject_to_publishing(message)
        extracted = propagation.extract_from_delivery(message, Context())
        self.assertEqual(
            trace.get_current_span(extracted).get_span_context().trace_id,
            span.get_span_context().trace_id,
        )

        headers = {"existing": "value"}
        with self.tracer.start_as_current_span("publish") as span:
            propagation.inject_to_headers(headers)
        self.assertEqual(headers["existing"], "value")
        extracted = propagation.extract_from_headers(headers, Context())
        self.assertEqual(
            trace.get_current_span(extracted).get_span_context().span_id,
            span.get_span_context().span_id,
        )

        propagation.inject_to_headers(None)
        ctx = Context()
        self.assertIs(propagation.extract_from_headers(None, ctx), ctx)
