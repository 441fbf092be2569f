"""Tests for definition, reference, rename and completion lookups."""

from __future__ import annotations

import pytest

from qlang.parser import parse
from qlang.resolver import FindKind, find_identifiers, rename_text, token_at
from tests.helpers import find_at, images, tok

ALL_KINDS = list(FindKind)


class TestTokenAt:
    def test_inside_token(self):
        tokens = parse("abc:1")
        assert token_at(tokens, 1, 2).image == "abc"

    def test_just_past_token_end(self):
        tokens = parse("abc +1")
        assert token_at(tokens, 1, 4).image == "abc"

    def test_containing_token_wins_over_previous(self):
        tokens = parse("x:count 1")
        assert token_at(tokens, 1, 3).image == "count"

    def test_nothing_there(self):
        assert token_at(parse("a:1"), 3, 1) is None


class TestDefinition:
    def test_local_definition(self):
        assert find_at("f:{[x] y:x+1; y}", FindKind.DEFINITION, 1, 15) == [(1, 8)]

    def test_global_definition(self):
        assert find_at("b:1\nb", FindKind.DEFINITION, 2, 1) == [(1, 1)]

    def test_local_shadows_global(self):
        source = "a:1\nf:{a:2; a}\ng:{a}"
        assert find_at(source, FindKind.DEFINITION, 2, 9) == [(2, 4)]
        assert find_at(source, FindKind.DEFINITION, 3, 4) == [(1, 1)]

    def test_enclosing_lambda_is_not_searched(self):
        source = "a:1\nf:{a:2; {a}}"
        assert find_at(source, FindKind.DEFINITION, 2, 10) == [(1, 1)]

    def test_reassigned_parameter(self):
        source = "f:{[x] x:x+1; x}"
        assert find_at(source, FindKind.DEFINITION, 1, 15) == [(1, 5), (1, 8)]

    def test_global_assign_from_lambda(self):
        assert find_at("f:{a::1}\na", FindKind.DEFINITION, 2, 1) == [(1, 4)]

    def test_local_assigned_in_control_body(self):
        assert find_at("f:{[c] if[c; r:1]; r}", FindKind.DEFINITION, 1, 20) == [(1, 14)]

    def test_multiple_target_assignment(self):
        assert find_at("(a;b):(1;2)\na+b", FindKind.DEFINITION, 2, 1) == [(1, 2)]
        assert find_at("(a;b):(1;2)\na+b", FindKind.DEFINITION, 2, 3) == [(1, 4)]

    def test_amends_are_not_definitions(self):
        source = "x:1\nx[0]:2\nx+:3"
        assert find_at(source, FindKind.DEFINITION, 3, 1) == [(1, 1)]

    def test_qualified_use_finds_namespace_definition(self):
        source = "\\d .ns\nf:1\n\\d .\n.ns.f"
        assert find_at(source, FindKind.DEFINITION, 4, 1) == [(2, 1)]


class TestReference:
    def test_global_references(self):
        assert find_at("b:1\nb", FindKind.REFERENCE, 1, 1) == [(1, 1), (2, 1)]
        assert find_at("b:1\nb", FindKind.REFERENCE, 2, 1) == [(1, 1), (2, 1)]

    def test_locals_are_excluded_from_global(self):
        source = "a:1\nf:{a:2; a}\ng:{a}"
        assert find_at(source, FindKind.REFERENCE, 1, 1) == [(1, 1), (3, 4)]

    def test_amends_are_references(self):
        source = "x:1\nx[0]:2\nx+:3"
        assert find_at(source, FindKind.REFERENCE, 1, 1) == [(1, 1), (2, 1), (3, 1)]

    def test_same_name_other_namespace(self):
        source = "f:0\n\\d .ns\nf:1\n\\d .\nf"
        assert find_at(source, FindKind.REFERENCE, 5, 1) == [(1, 1), (5, 1)]
        assert find_at(source, FindKind.REFERENCE, 3, 1) == [(3, 1)]

    def test_results_in_source_order(self):
        source = "b\nb:1\nf:{b}\nb"
        result = find_at(source, FindKind.REFERENCE, 4, 1)
        assert result == sorted(result)
        assert len(result) == 4

    def test_idempotent(self):
        tokens = parse("b:1\nf:{b+1}\nb")
        source = tok(tokens, "b", 2)
        first = find_identifiers(FindKind.REFERENCE, tokens, source)
        second = find_identifiers(FindKind.REFERENCE, tokens, source)
        assert first == second


class TestRename:
    def test_rename_stays_in_lambda(self):
        source = "f:{x:1; x}\ng:{x:2; x}"
        assert find_at(source, FindKind.RENAME, 1, 9) == [(1, 4), (1, 9)]
        assert find_at(source, FindKind.RENAME, 2, 9) == [(2, 4), (2, 9)]

    def test_rename_keeps_namespace_prefix(self):
        tokens = parse(".ns.f:1\n.ns.f")
        found = find_identifiers(FindKind.RENAME, tokens, tokens[0])
        assert [rename_text(t, "g") for t in found] == [".ns.g", ".ns.g"]

    def test_rename_to_qualified_name(self):
        source = parse(".ns.f:1")[0]
        assert rename_text(source, ".other.g") == ".other.g"

    def test_rename_unqualified(self):
        assert rename_text(parse("f:1")[0], "g") == "g"


class TestCompletion:
    def test_top_level_sees_globals_only(self):
        tokens = parse("f:{[x] y:x+1; y}")
        assert images(find_identifiers(FindKind.COMPLETION, tokens, tokens[0])) == ["f"]

    def test_lambda_sees_own_locals(self):
        tokens = parse("f:{[x] y:x+1; y}")
        source = tok(tokens, "y", 1)
        assert images(find_identifiers(FindKind.COMPLETION, tokens, source)) == ["f", "x", "y"]

    def test_one_entry_per_binding(self):
        tokens = parse("a:1\na:2\nb:3\nb")
        assert images(find_identifiers(FindKind.COMPLETION, tokens, tokens[-1])) == ["a", "b"]

    def test_other_lambda_locals_hidden(self):
        tokens = parse("f:{p:1; p}\ng:{q:1; q}")
        source = tok(tokens, "q", 1)
        assert images(find_identifiers(FindKind.COMPLETION, tokens, source)) == ["f", "g", "q"]


class TestUnresolvable:
    @pytest.mark.parametrize("kind", ALL_KINDS)
    def test_keyword_source(self, kind):
        assert find_at("x:count 1", kind, 1, 3) == []

    @pytest.mark.parametrize("kind", ALL_KINDS)
    def test_number_source(self, kind):
        assert find_at("x:count 1", kind, 1, 9) == []

    @pytest.mark.parametrize("kind", ALL_KINDS)
    def test_no_source(self, kind):
        assert find_identifiers(kind, parse("a:1"), None) == []

    def test_undefined_global(self):
        assert find_at("foo+1", FindKind.REFERENCE, 1, 1) == []
        assert find_at("foo+1", FindKind.DEFINITION, 1, 1) == []

    def test_implicit_param_without_definition(self):
        assert find_at("f:{y+1}", FindKind.DEFINITION, 1, 4) == []


class TestPositionInvariant:
    @pytest.mark.parametrize("kind", ALL_KINDS)
    def test_results_never_from_nested_lambda_locals(self, kind):
        tokens = parse("a:1\nf:{a:2; a}\ng:{[a] a}\na")
        source = tokens[-1]
        for result in find_identifiers(kind, tokens, source):
            assert result.scope is None
