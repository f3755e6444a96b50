"""Shared fixtures for core unit tests"""

import pytest

from adfmd.core.models import ConversionContext
from adfmd.core.parse import MarkdownAdapter, make_parser
from adfmd.core.pipeline import ConversionEngine


SAMPLE_MD = """\
# Title

Plain **bold** and *em* text with {user:alice} on {date:2023-12-25}.

- one
- two

~~~panel type=info
Inside
~~~
"""


def nested_panels(depth: int) -> str:
    """`depth` panels nested inside one another around a single paragraph."""
    return "\n".join(["~~~panel type=info"] * depth + ["deep"] + ["~~~"] * depth) + "\n"


@pytest.fixture(name="ctx")
def ctx_fixture():
    return ConversionContext()


@pytest.fixture(name="strict_ctx")
def strict_ctx_fixture():
    return ConversionContext(strict=True)


@pytest.fixture(name="adapter")
def adapter_fixture():
    return MarkdownAdapter(make_parser())


@pytest.fixture(name="fragment_adapter")
def fragment_adapter_fixture():
    return MarkdownAdapter(make_parser(frontmatter=False))


@pytest.fixture(name="engine")
def engine_fixture():
    return ConversionEngine()


@pytest.fixture(name="sample_md")
def sample_md_fixture():
    return SAMPLE_MD


@pytest.fixture(name="nested")
def nested_fixture():
    return nested_panels
