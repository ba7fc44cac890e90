"""Pytest configuration and fixtures for proto-filter tests."""

import shutil
import tempfile
import textwrap
from pathlib import Path
from typing import Callable, Generator

import pytest

from proto_filter.models import ProtoFile
from proto_filter.parser import parse_source


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def fixtures_path() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def crossfile_dir(fixtures_path: Path) -> Path:
    """orders.proto, common.proto and payments.proto referencing each other."""
    return fixtures_path / "crossfile"


@pytest.fixture
def comments_dir(fixtures_path: Path) -> Path:
    return fixtures_path / "comments"


@pytest.fixture
def simple_dir(fixtures_path: Path) -> Path:
    return fixtures_path / "simple"


@pytest.fixture
def parse_proto() -> Callable[..., ProtoFile]:
    """Parse dedented .proto source text into a tree."""

    def _parse(source: str, path: str = "test.proto") -> ProtoFile:
        return parse_source(textwrap.dedent(source).lstrip("\n"), path)

    return _parse


@pytest.fixture
def write_config(temp_dir: Path) -> Callable[[str], Path]:
    """Write YAML text to a config file inside the temp dir."""

    def _write(text: str) -> Path:
        path = temp_dir / "filter.yaml"
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def orders_source() -> str:
    """Single-file service with one annotated method."""
    return '''
syntax = "proto3";

package orders;

// OrderService manages orders.
service OrderService {
  // ListOrders returns all orders.
  rpc ListOrders(ListOrdersRequest) returns (ListOrdersResponse);

  // GetOrderDetails returns one order.
  // @HasAnyRole("ADMIN")
  rpc GetOrderDetails(GetOrderDetailsRequest) returns (GetOrderDetailsResponse);
}

message ListOrdersRequest {
  int32 page = 1;
}

message ListOrdersResponse {
  repeated Order orders = 1;
}

message Order {
  string id = 1;
}

message GetOrderDetailsRequest {
  string id = 1;
}

message GetOrderDetailsResponse {
  Order order = 1;
  Details details = 2;
}

message Details {
  Status status = 1;
}

enum Status {
  STATUS_UNKNOWN = 0;
}
'''
