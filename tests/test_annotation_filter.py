"""Tests for annotation-driven filtering and orphan elimination."""

from proto_filter.annotation_filter import (
    apply_annotation_rule,
    collect_referenced_types,
    filter_fields_by_annotation,
    filter_methods_by_annotation,
    filter_services_by_annotation,
    has_remaining_definitions,
    include_services_by_annotation,
    remove_empty_services,
    remove_orphaned_definitions,
)
from proto_filter.config import AnnotationRule
from proto_filter.models import Field, MapField, Message, OneOf


def _names(tree):
    return sorted(e.name for e in tree.services + tree.messages + tree.enums)


def _method_names(tree):
    return [m.name for svc in tree.services for m in svc.methods]


class TestExcludeMode:
    """Removing declarations that carry an excluded annotation."""

    def test_method_removed_and_orphans_cascade(self, parse_proto, orders_source):
        """Orphans disappear over several passes: request/response, then Details, then Status."""
        tree = parse_proto(orders_source)

        result = apply_annotation_rule(tree, "orders", AnnotationRule(exclude=["HasAnyRole"]))

        assert result.methods_removed == 1
        assert result.services_removed == 0
        assert result.orphans_removed == 4
        assert _method_names(tree) == ["ListOrders"]
        assert _names(tree) == ["ListOrdersRequest", "ListOrdersResponse", "Order", "OrderService"]

    def test_annotated_service_removed(self, parse_proto):
        tree = parse_proto(
            """
            syntax = "proto3";
            package p;

            // [Internal]
            service Admin {
              rpc Purge(PurgeRequest) returns (PurgeResponse);
            }

            message PurgeRequest {}
            message PurgeResponse {}
            """
        )

        result = apply_annotation_rule(tree, "p", AnnotationRule(exclude=["Internal"]))

        assert result.services_removed == 1
        assert result.orphans_removed == 2
        assert not has_remaining_definitions(tree)

    def test_service_emptied_by_method_removal_is_dropped(self, parse_proto):
        tree = parse_proto(
            """
            package p;
            service S {
              // @Internal
              rpc A(Req) returns (Resp);
            }
            message Req {}
            message Resp {}
            """
        )

        apply_annotation_rule(tree, "p", AnnotationRule(exclude=["Internal"]))

        assert tree.services == []
        assert tree.messages == []

    def test_empty_name_list_is_noop(self, parse_proto, orders_source):
        tree = parse_proto(orders_source)

        assert filter_services_by_annotation(tree, []) == 0
        assert filter_methods_by_annotation(tree, None) == 0
        assert filter_fields_by_annotation(tree, []) == 0
        assert len(_method_names(tree)) == 2

    def test_unannotated_file_untouched(self, parse_proto, orders_source):
        tree = parse_proto(orders_source)

        result = apply_annotation_rule(tree, "orders", AnnotationRule(exclude=["Unknown"]))

        assert result.orphans_removed == 0
        assert len(_names(tree)) == 8


class TestIncludeMode:
    """Keeping only declarations that carry an included annotation."""

    def test_unannotated_methods_removed(self, parse_proto, orders_source):
        tree = parse_proto(orders_source)

        result = apply_annotation_rule(tree, "orders", AnnotationRule(include=["HasAnyRole"]))

        assert result.methods_removed == 1
        assert result.services_removed == 0
        assert result.orphans_removed == 2
        assert _method_names(tree) == ["GetOrderDetails"]
        assert "Order" in _names(tree)
        assert "ListOrdersRequest" not in _names(tree)

    def test_modes_partition_methods(self, parse_proto, orders_source):
        """Include and exclude with the same name split the methods between them."""
        excluded = parse_proto(orders_source)
        included = parse_proto(orders_source)

        apply_annotation_rule(excluded, "orders", AnnotationRule(exclude=["HasAnyRole"]))
        apply_annotation_rule(included, "orders", AnnotationRule(include=["HasAnyRole"]))

        assert set(_method_names(excluded)) | set(_method_names(included)) == {"ListOrders", "GetOrderDetails"}
        assert not set(_method_names(excluded)) & set(_method_names(included))

    def test_services_with_other_annotations_removed(self, parse_proto):
        tree = parse_proto(
            """
            package p;
            // @Public
            service A {}
            // @Internal
            service B {}
            service C {}
            """
        )

        removed = include_services_by_annotation(tree, ["Internal"])

        assert removed == 1
        assert [s.name for s in tree.services] == ["B", "C"]
        assert remove_empty_services(tree) == 2


class TestFieldFilter:
    """Field-level removal by leading or inline annotation."""

    SOURCE = """
        package p;
        message User {
          string id = 1;
          // @Sensitive
          string ssn = 2;
          string email = 3; // [Sensitive]
          map<string, string> labels = 4; // @Sensitive
          oneof contact {
            string phone = 5;
            // @Sensitive
            string home_address = 6;
          }
          message Nested {
            // @Sensitive
            Secret secret = 1;
            int32 n = 2;
          }
        }
        message Secret {}
        """

    def test_fields_removed_recursively(self, parse_proto):
        tree = parse_proto(self.SOURCE)

        removed = filter_fields_by_annotation(tree, ["Sensitive"])

        assert removed == 5
        user = tree.messages[0]
        remaining = [e.name for e in user.elements if isinstance(e, (Field, MapField))]
        assert remaining == ["id"]
        oneof = next(e for e in user.elements if isinstance(e, OneOf))
        assert [f.name for f in oneof.elements] == ["phone"]
        nested = next(e for e in user.elements if isinstance(e, Message))
        assert [f.name for f in nested.elements] == ["n"]

    def test_field_removal_leaves_orphans_alone(self, parse_proto):
        """Only service or method removal triggers orphan elimination."""
        tree = parse_proto(self.SOURCE)

        result = apply_annotation_rule(tree, "p", AnnotationRule(exclude=["Sensitive"]))

        assert result.fields_removed == 5
        assert result.orphans_removed == 0
        assert "Secret" in _names(tree)

    def test_oneof_emptied_by_field_removal_is_dropped(self, parse_proto):
        tree = parse_proto(
            """
            package p;
            message Profile {
              string id = 1;
              oneof secret {
                // @Sensitive
                string pin = 2;
                string token = 3; // @Sensitive
              }
            }
            """
        )

        removed = filter_fields_by_annotation(tree, ["Sensitive"])

        assert removed == 2
        profile = tree.messages[0]
        assert not any(isinstance(e, OneOf) for e in profile.elements)
        assert [e.name for e in profile.elements] == ["id"]


class TestOrphanElimination:
    def test_self_referencing_message_keeps_itself_alive(self, parse_proto):
        tree = parse_proto(
            """
            package p;
            service S {
              rpc A(Req) returns (Resp);
            }
            message Req {}
            message Resp {}
            message TreeNode {
              TreeNode parent = 1;
              repeated Leaf leaves = 2;
              message Leaf {
                TreeNode owner = 1;
              }
            }
            message Unused {}
            """
        )

        assert "p.TreeNode" in collect_referenced_types(tree, "p")
        removed = remove_orphaned_definitions(tree, "p")

        assert removed == 1
        assert _names(tree) == ["Req", "Resp", "S", "TreeNode"]

    def test_mutually_recursive_messages_survive(self, parse_proto):
        tree = parse_proto(
            """
            package p;
            message Ping {
              Pong reply = 1;
            }
            message Pong {
              Ping request = 1;
            }
            """
        )

        assert remove_orphaned_definitions(tree, "p") == 0
        assert _names(tree) == ["Ping", "Pong"]

    def test_pinned_definitions_survive(self, parse_proto):
        tree = parse_proto(
            """
            package common;
            message Money {}
            message Unused {}
            """
        )

        removed = remove_orphaned_definitions(tree, "common", pinned={"common.Money"})

        assert removed == 1
        assert _names(tree) == ["Money"]

    def test_nested_reference_keeps_outer_message(self, parse_proto):
        tree = parse_proto(
            """
            package p;
            service S {
              rpc A(Holder) returns (Holder);
            }
            message Holder {
              Outer.Inner inner = 1;
            }
            message Outer {
              message Inner {}
            }
            """
        )

        assert "p.Outer.Inner" in collect_referenced_types(tree, "p")
        assert remove_orphaned_definitions(tree, "p") == 0

    def test_extend_and_fully_qualified_references(self, parse_proto):
        tree = parse_proto(
            """
            syntax = "proto2";
            package p;
            message Base {
              extensions 100 to 200;
            }
            extend Base {
              optional .p.Extra extra = 100;
            }
            message Extra {}
            message Dropped {}
            """
        )

        refs = collect_referenced_types(tree, "p")

        assert {"p.Base", "p.Extra"} <= refs
        assert remove_orphaned_definitions(tree, "p") == 1
        assert _names(tree) == ["Base", "Extra"]
