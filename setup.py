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

import os

import setuptools

BASE_DIR = os.path.dirname(__file__)
VERSION_FILENAME = os.path.join(
    BASE_DIR,
    "src",
    "opentelemetry",
    "instrumentation",
    "rabbitmq",
    "version.py",
)
PACKAGE_INFO = {}
with open(VERSION_FILENAME) as f:
    exec(f.read(), PACKAGE_INFO)

long_description = """
# opentelemetry-instrumentation-rabbitmq

Traced publish and consume wrappers for RabbitMQ applications built on
`aio-pika`. Trace context travels from producer to consumer inside the AMQP
message headers.
"""

install_requires = [
    "aio-pika >= 9.0.0, < 10.0.0",
    "aiormq >= 6.4.0",
    "opentelemetry-api ~= 1.12",
    "opentelemetry-instrumentation >= 0.44b0",
    "opentelemetry-semantic-conventions >= 0.44b0",
    "wrapt >= 1.0.0, < 2.0.0",
]

setuptools.setup(
    name="opentelemetry-instrumentation-rabbitmq",
    version=PACKAGE_INFO["__version__"],
    description="OpenTelemetry RabbitMQ instrumentation for aio-pika",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="OpenTelemetry Authors",
    author_email="cncf-opentelemetry-contributors@lists.cncf.io",
    license="Apache-2.0",
    python_requires=">=3.8",
    package_dir={"": "src"},
    packages=setuptools.find_namespace_packages(
        where="src", include=["opentelemetry.*"]
    ),
    install_requires=install_requires,
    extras_require={
        "test": [
            "opentelemetry-sdk ~= 1.12",
            "opentelemetry-test-utils >= 0.44b0",
            "pytest",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
