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
from typing import Optional

from opentelemetry import trace
from opentelemetry.instrumentation.rabbitmq.version import __version__
from opentelemetry.trace import (
    Span,
    Status,
    StatusCode,
    Tracer,
    TracerProvider,
)

_INSTRUMENTATION_MODULE_NAME = "opentelemetry.instrumentation.rabbitmq"


def get_tracer(tracer_provider: Optional[TracerProvider] = None) -> Tracer:
    return trace.get_tracer(
        _INSTRUMENTATION_MODULE_NAME, __version__, tracer_provider
    )


def set_span_status(
    span: Optional[Span], exception: Optional[BaseException] = None
) -> None:
    """Marks the span as failed when ``exception`` is given, ok otherwise.

    A missing span is ignored.
    """
    if span is None:
        return
    if exception is not None:
        span.record_exception(exception)
        span.set_status(Status(StatusCode.ERROR, str(exception)))
    else:
        span.set_status(Status(StatusCode.OK))
