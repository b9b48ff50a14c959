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
from opentelemetry.instrumentation.rabbitmq.utils import (
    get_tracer,
    set_span_status,
)
from opentelemetry.instrumentation.rabbitmq.version import __version__
from opentelemetry.test.test_base import TestBase
from opentelemetry.trace import StatusCode


class TestUtils(TestBase):
    def setUp(self):
        super().setUp()
        self.tracer = get_tracer(self.tracer_provider)

    def test_get_tracer(self):
        with self.tracer.start_as_current_span("test"):
            pass

        span = self.memory_exporter.get_finished_spans()[0]
        self.assertEqual(
            span.instrumentation_scope.name,
            "opentelemetry.instrumentation.rabbitmq",
        )
        self.assertEqual(span.instrumentation_scope.version, __version__)

    def test_set_span_status_ok(self):
        span = self.tracer.start_span("test")
        set_span_status(span)
        span.end()

        finished = self.memory_exporter.get_finished_spans()[0]
        self.assertEqual(finished.status.status_code, StatusCode.OK)
        self.assertEqual(len(finished.events), 0)

    def test_set_span_status_error(self):
        span = self.tracer.start_span("test")
        set_span_status(span, ValueError("broker unreachable"))
        span.end()

        finished = self.memory_exporter.get_finished_spans()[0]
        self.assertEqual(finished.status.status_code, StatusCode.ERROR)
        self.assertEqual(finished.status.description, "broker unreachable")
        self.assertEqual(finished.events[0].name, "exception")
        self.assertEqual(
            finished.events[0].attributes["exception.type"], "ValueError"
        )

    def test_set_span_status_without_span(self):
        set_span_status(None, ValueError("ignored"))
        set_span_status(None)
        self.assertEqual(len(self.memory_exporter.get_finished_spans()), 0)
