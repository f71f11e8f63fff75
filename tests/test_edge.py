"""Tests for edge hooks and distribution declaration"""

import pytest

from topology.edge import (
    REDIRECT_TO_HTTPS,
    StripHeader,
    apply_hooks,
    build_distribution,
    compile_hooks,
)
from topology.errors import ConfigurationError

HOOK = StripHeader("X-Explioit-Activate")


class TestStripHeader:
    def test_removes_header(self):
        headers = {"host": "example.com", "x-explioit-activate": "1"}
        assert HOOK(headers) == {"host": "example.com"}

    def test_case_insensitive(self):
        assert HOOK({"X-EXPLIOIT-ACTIVATE": "1", "accept": "*/*"}) == {"accept": "*/*"}

    def test_no_op_when_absent(self):
        headers = {"host": "example.com"}
        assert HOOK(headers) == headers

    def test_idempotent(self):
        headers = {"host": "example.com", "x-explioit-activate": "1"}
        assert HOOK(HOOK(headers)) == HOOK(headers)

    def test_does_not_mutate_input(self):
        headers = {"x-explioit-activate": "1"}
        HOOK(headers)
        assert headers == {"x-explioit-activate": "1"}


class TestApplyHooks:
    def test_runs_hooks_in_order(self):
        hooks = [StripHeader("x-a"), StripHeader("x-b")]
        assert apply_hooks(hooks, {"x-a": "1", "x-b": "2", "host": "h"}) == {"host": "h"}

    def test_no_hooks(self):
        assert apply_hooks([], {"host": "h"}) == {"host": "h"}


class TestCompileHooks:
    def test_handler_deletes_lowercase_header(self):
        code = compile_hooks([HOOK])
        assert code.startswith("function handler(event) {")
        assert "delete request.headers['x-explioit-activate'];" in code
        assert code.rstrip().endswith("}")
        assert "return request;" in code

    def test_hooks_render_in_order(self):
        code = compile_hooks([StripHeader("x-first"), StripHeader("x-second")])
        assert code.index("x-first") < code.index("x-second")

    def test_quotes_are_escaped(self):
        assert "x-\\'bad" in StripHeader("x-'bad").to_js()


class TestBuildDistribution:
    def test_defaults_to_redirect_to_https(self):
        edge = build_distribution("alb.example.com", 8080, [HOOK])
        assert edge.viewer_protocol_policy == REDIRECT_TO_HTTPS
        assert edge.origin_address == "alb.example.com"
        assert edge.origin_port == 8080
        assert edge.hooks == (HOOK,)
        assert "x-explioit-activate" in edge.function_code

    def test_allow_all_is_rejected(self):
        with pytest.raises(ConfigurationError):
            build_distribution("alb.example.com", 8080, viewer_protocol_policy="allow-all")

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port(self, port):
        with pytest.raises(ConfigurationError):
            build_distribution("alb.example.com", port)
