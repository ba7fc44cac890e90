"""Tests for annotation substitution, strict mode and block-comment conversion."""

import pytest

from proto_filter.errors import StrictSubstitutionError
from proto_filter.models import CommentBlock
from proto_filter.parser import parse_proto_file
from proto_filter.substitution import (
    check_strict_substitutions,
    collect_annotation_locations,
    collect_annotations,
    convert_block_comments,
    strip_annotations,
    substitute_annotations,
    substitute_line,
)


class TestSubstituteLine:
    def test_plain_replacement(self):
        assert substitute_line(" @Internal", {"Internal": "Internal use only."}) == (" Internal use only.", 1)

    def test_arguments_fill_placeholder(self):
        line, count = substitute_line(' [HasAnyRole("ADMIN")]', {"HasAnyRole": "Requires role %s."})

        assert line == ' Requires role "ADMIN".'
        assert count == 1

    def test_placeholder_without_arguments(self):
        assert substitute_line(" @Audit", {"Audit": "Audited%s."}) == (" Audited.", 1)

    def test_empty_replacement_removes_one_space(self):
        line, count = substitute_line(" Returns data @Internal and more", {"Internal": ""})

        assert line == " Returns data and more"
        assert count == 1

    def test_unmapped_tokens_untouched(self):
        assert substitute_line(" @Other text", {"Internal": ""}) == (" @Other text", 0)

    def test_multiple_tokens(self):
        line, count = substitute_line(" @A [B] @A", {"A": "a", "B": "b"})

        assert line == " a b a"
        assert count == 3


class TestSubstituteAnnotations:
    SOURCE = """
        syntax = "proto3";
        package p;

        // @Generated

        // Service docs.
        // @Internal
        service S {
          // @Internal
          rpc A(Req) returns (Req);
          // Does B.
          // [Audit(full)]
          rpc B(Req) returns (Req);
        }

        message Req {
          string id = 1; // @Internal
        }
        """

    def test_blank_lines_and_comments_removed(self, parse_proto):
        tree = parse_proto(self.SOURCE)

        count = strip_annotations(tree, ["Internal", "Generated"])

        assert count == 4
        assert not any(isinstance(e, CommentBlock) for e in tree.elements)
        service = tree.services[0]
        assert service.comment.lines == [" Service docs."]
        method_a, method_b = service.methods
        assert method_a.comment is None
        assert method_b.comment.lines == [" Does B.", " [Audit(full)]"]
        assert tree.messages[0].elements[0].inline_comment is None

    def test_replacement_text(self, parse_proto):
        tree = parse_proto(self.SOURCE)

        count = substitute_annotations(tree, {"Audit": "Audit level: %s."})

        assert count == 1
        method_b = tree.services[0].methods[1]
        assert method_b.comment.lines == [" Does B.", " Audit level: full."]

    def test_empty_mapping_is_noop(self, parse_proto):
        tree = parse_proto(self.SOURCE)

        assert substitute_annotations(tree, {}) == 0
        assert collect_annotations(tree) == {"Generated", "Internal", "Audit"}


class TestStrictMode:
    def test_all_mapped_passes(self, parse_proto):
        tree = parse_proto("// @A\nmessage M {} // [B]\n")

        check_strict_substitutions([tree], {"A": "", "B": "b"})

    def test_missing_annotations_reported_with_locations(self, parse_proto):
        first = parse_proto(
            """
            // @Known
            // @Zeta
            message M {
              // [Alpha(1)]
              string f = 1;
            }
            """,
            path="b.proto",
        )
        second = parse_proto("// @Zeta\nmessage N {}\n", path="a.proto")

        with pytest.raises(StrictSubstitutionError) as exc_info:
            check_strict_substitutions([first, second], {"Known": "known"})

        err = exc_info.value
        assert err.missing == ["Alpha", "Zeta"]
        assert [str(loc) for loc in err.locations] == [
            "a.proto:1: @Zeta",
            "b.proto:2: @Zeta",
            "b.proto:4: [Alpha(1)]",
        ]
        assert str(err).splitlines() == [
            "unsubstituted annotations found: Alpha, Zeta",
            "  a.proto:1: @Zeta",
            "  b.proto:2: @Zeta",
            "  b.proto:4: [Alpha(1)]",
        ]
        assert err.exit_code == 2

    def test_locations_inside_block_comments(self, comments_dir):
        tree = parse_proto_file(comments_dir / "multiline.proto", "multiline.proto")

        locations = collect_annotation_locations(tree)

        assert [(loc.line, loc.name) for loc in locations] == [
            (23, "StartsWithSnapshot"),
            (24, "SupportWindow"),
        ]


class TestBlockCommentConversion:
    def test_converts_every_block_comment(self, comments_dir):
        tree = parse_proto_file(comments_dir / "multiline.proto", "multiline.proto")

        converted = convert_block_comments(tree)

        assert converted == 5
        enum = tree.enums[0]
        assert not enum.comment.cstyle
        assert enum.comment.lines == [
            " PaymentStatus tracks the lifecycle of a payment",
            " from creation to settlement or failure.",
        ]
        assert enum.comment.line == 6
        assert enum.elements[0].comment.lines == [" Payment created but not yet processed."]

        service = tree.services[0]
        assert service.comment.lines == [
            " PaymentService provides operations for payments.",
            " All methods require a bearer token.",
        ]
        assert service.methods[0].comment.lines == [
            " MakePayment initiates a new payment.",
            " @StartsWithSnapshot",
            " [SupportWindow(30)]",
        ]

    def test_line_numbers_survive_conversion(self, comments_dir):
        tree = parse_proto_file(comments_dir / "multiline.proto", "multiline.proto")
        before = collect_annotation_locations(tree)

        convert_block_comments(tree)

        assert collect_annotation_locations(tree) == before

    def test_line_comments_untouched(self, comments_dir):
        tree = parse_proto_file(comments_dir / "multiline.proto", "multiline.proto")

        convert_block_comments(tree)

        request = tree.messages[0]
        assert request.comment.lines == [" PaymentRequest contains all information", " needed to make a payment."]
        assert request.elements[1].inline_comment.lines == [" ISO 4217 currency code"]

    def test_empty_block_comment(self, parse_proto):
        tree = parse_proto("/* */\nmessage M {}\n")

        assert convert_block_comments(tree) == 1
        assert tree.messages[0].comment.lines == [""]
