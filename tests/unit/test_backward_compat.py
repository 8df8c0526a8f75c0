"""Unit tests for rewriting stored example code into declarations."""

from almond_cloud.services.backward_compat import dataset_backward_compat
from almond_cloud.thingtalk import parse


def _row(target_code, **extra):
    return {"id": 1, "utterance": "test", "target_code": target_code, "name": "test_example", **extra}


class TestDeclarationRewrite:
    """Test the default (current dialect) rewrite."""

    def test_stream_example_becomes_declaration(self):
        rows = dataset_backward_compat([_row("stream := monitor(@com.twitter.home_timeline())")])

        assert rows[0]["target_code"] == "let stream x := monitor(@com.twitter.home_timeline());"

    def test_query_with_params_becomes_declaration(self):
        rows = dataset_backward_compat([
            _row("query (p_query :String) := @com.bing.web_search(query=p_query)")
        ])

        assert rows[0]["target_code"] == "let query x(p_query :String) := @com.bing.web_search(query=p_query);"

    def test_program_prefix_is_removed(self):
        rows = dataset_backward_compat([_row("program := now => @com.bing.web_search() => notify;")])

        assert rows[0]["target_code"].strip() == "now => @com.bing.web_search() => notify;"

    def test_trailing_block_semicolon_is_removed(self):
        rows = dataset_backward_compat([_row("{ now => @com.bing.web_search() => notify; };")])

        assert rows[0]["target_code"] == "{ now => @com.bing.web_search() => notify; }"

    def test_declarations_are_unchanged(self):
        code = "let query x(p_query :String) := @com.bing.web_search(query=p_query);"
        rows = dataset_backward_compat([_row(code)])

        assert rows[0]["target_code"] == code

    def test_rewrite_is_idempotent(self):
        rows = dataset_backward_compat([_row("stream := monitor(@com.twitter.home_timeline())")])
        first = rows[0]["target_code"]

        rows = dataset_backward_compat(rows)

        assert rows[0]["target_code"] == first

    def test_name_is_dropped(self):
        rows = dataset_backward_compat([_row("stream := monitor(@com.twitter.home_timeline())")])

        assert "name" not in rows[0]
        assert rows[0]["id"] == 1

    def test_output_parses(self):
        rows = dataset_backward_compat([
            _row("action (p_status :String) := @com.twitter.post(status=p_status)")
        ])

        declaration = parse(rows[0]["target_code"]).declarations[0]
        assert declaration.type == "action"
        assert declaration.args == {"p_status": "String"}


class TestApiVersion1Rewrite:
    """Test the apiVersion=1 dialect."""

    def test_query_becomes_lambda_table(self):
        rows = dataset_backward_compat(
            [_row("query (p_query :String) := @com.bing.web_search(query=p_query)")],
            apply_compat=True,
        )

        assert rows[0]["target_code"] == "let table x := \\(p_query :String) -> @com.bing.web_search(query=p_query);"

    def test_query_without_params(self):
        rows = dataset_backward_compat(
            [_row("query := @com.bing.web_search()")],
            apply_compat=True,
        )

        assert rows[0]["target_code"] == "let table x := @com.bing.web_search();"

    def test_action_with_params_becomes_lambda(self):
        rows = dataset_backward_compat(
            [_row("action (p_status :String) := @com.twitter.post(status=p_status)")],
            apply_compat=True,
        )

        assert rows[0]["target_code"] == "let action x := \\(p_status :String) -> @com.twitter.post(status=p_status);"
