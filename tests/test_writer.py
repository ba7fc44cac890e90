"""Tests for formatting trees back to .proto source."""

from pathlib import Path

import pytest

from proto_filter.errors import WriteError
from proto_filter.parser import parse_proto_file, parse_source
from proto_filter.writer import format_proto, write_proto_file


@pytest.mark.parametrize("name", ["common.proto", "payments.proto"])
def test_canonical_files_unchanged(crossfile_dir: Path, name: str):
    """Files already in canonical layout format back to identical text."""
    path = crossfile_dir / name
    tree = parse_proto_file(path, name)

    assert format_proto(tree) == path.read_text(encoding="utf-8")


@pytest.mark.parametrize(
    "rel",
    [
        "crossfile/orders.proto",
        "comments/multiline.proto",
        "simple/service.proto",
        "simple/nested/types.proto",
    ],
)
def test_format_is_stable(fixtures_path: Path, rel: str):
    """Formatting, re-parsing and formatting again yields the same text."""
    tree = parse_proto_file(fixtures_path / rel, rel)
    first = format_proto(tree)
    reparsed = parse_source(first, rel)

    assert format_proto(reparsed) == first
    assert [type(e) for e in reparsed.elements] == [type(e) for e in tree.elements]


def test_layout(parse_proto):
    tree = parse_proto(
        """
        syntax = "proto3";
        package p;
        import "a.proto";
        import public "b.proto";
        option java_package = "x";
        // Service.
        service S {
          rpc A(stream Req) returns (Resp) {
            option idempotency_level = NO_SIDE_EFFECTS;
          }
        }
        message Req {
          map<string, int32> counts = 1;
          oneof choice {
            string x = 2;
          }
          reserved 5;
        }
        message Resp {}
        enum E {
          E_UNKNOWN = 0;
          E_NEG = -1 [deprecated = true];
        }
        """
    )

    assert format_proto(tree) == (
        'syntax = "proto3";\n'
        "\n"
        "package p;\n"
        "\n"
        'import "a.proto";\n'
        'import public "b.proto";\n'
        "\n"
        'option java_package = "x";\n'
        "\n"
        "// Service.\n"
        "service S {\n"
        "  rpc A(stream Req) returns (Resp) {\n"
        "    option idempotency_level = NO_SIDE_EFFECTS;\n"
        "  }\n"
        "}\n"
        "\n"
        "message Req {\n"
        "  map<string, int32> counts = 1;\n"
        "\n"
        "  oneof choice {\n"
        "    string x = 2;\n"
        "  }\n"
        "\n"
        "  reserved 5;\n"
        "}\n"
        "\n"
        "message Resp {}\n"
        "\n"
        "enum E {\n"
        "  E_UNKNOWN = 0;\n"
        "  E_NEG = -1 [deprecated = true];\n"
        "}\n"
    )


def test_block_comments_kept_verbatim(comments_dir: Path):
    tree = parse_proto_file(comments_dir / "multiline.proto", "multiline.proto")

    text = format_proto(tree)

    assert "/**\n * PaymentService provides operations for payments.\n" in text
    assert "  /* Payment created but not yet processed. */\n" in text
    assert "  string currency = 2; // ISO 4217 currency code\n" in text


def test_write_creates_parent_directories(temp_dir: Path, parse_proto):
    tree = parse_proto("package p;\nmessage M {}\n")
    target = temp_dir / "deep" / "nested" / "m.proto"

    write_proto_file(tree, target)

    assert target.read_text(encoding="utf-8") == "package p;\n\nmessage M {}\n"


def test_write_failure_raises(temp_dir: Path, parse_proto):
    tree = parse_proto("package p;\n")
    target = temp_dir / "taken"
    target.mkdir()

    with pytest.raises(WriteError) as exc_info:
        write_proto_file(tree, target)

    assert exc_info.value.exit_code == 1
    assert str(target) in str(exc_info.value)
