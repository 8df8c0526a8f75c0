"""Unit tests for dataset synthesis from example rows."""

import pytest

from almond_cloud.services.datasets import example_code, examples_to_dataset
from almond_cloud.thingtalk import parse


def _row(id_, utterance, target_code, **extra):
    row = {
        "id": id_,
        "utterance": utterance,
        "preprocessed": utterance,
        "target_code": target_code,
        "click_count": 0,
        "like_count": 0,
        "name": None,
    }
    row.update(extra)
    return row


class TestExampleCode:
    """Test normalization of stored code to example heads."""

    def test_table_declaration_becomes_query(self):
        code = example_code("let table x(p_query :String) := @com.bing.web_search(query=p_query);")

        assert code == "query (p_query :String) := @com.bing.web_search(query=p_query)"

    def test_procedure_declaration_becomes_action(self):
        code = example_code("let procedure x := @com.twitter.post(status=\"hi\");")

        assert code == "action := @com.twitter.post(status=\"hi\")"

    def test_example_heads_are_kept(self):
        assert example_code("  stream := monitor(@com.twitter.home_timeline())\n") == \
            "stream := monitor(@com.twitter.home_timeline())"

    def test_bare_program_gets_prefix(self):
        assert example_code("now => @com.bing.web_search() => notify") == \
            "program := now => @com.bing.web_search() => notify"


class TestExamplesToDataset:
    """Test dataset rendering."""

    def test_dataset_header(self):
        dataset = examples_to_dataset("org.thingpedia.dynamic.by_kinds.com_bing", "en", [])

        assert dataset.startswith('dataset @org.thingpedia.dynamic.by_kinds.com_bing language "en" {')
        assert dataset.endswith("}")

    def test_identical_code_is_merged(self):
        rows = [
            _row(1, "search on bing", "query := @com.bing.web_search()", click_count=5),
            _row(2, "bing search", "let query x := @com.bing.web_search();", click_count=9),
        ]

        dataset = parse(examples_to_dataset("test", "en", rows)).datasets[0]

        assert len(dataset.examples) == 1
        example = dataset.examples[0]
        assert example.utterances == ["search on bing", "bing search"]
        assert example.preprocessed == ["search on bing", "bing search"]
        assert example.id == 1
        assert example.annotations.impl["click_count"] == 5

    def test_examples_keep_params_and_names(self):
        rows = [
            _row(
                3,
                "search $p_query on bing",
                "query (p_query :String) := @com.bing.web_search(query=p_query)",
                name="search_on_bing",
                like_count=2,
            ),
            _row(4, "tweet something", "action := @com.twitter.post()"),
        ]

        dataset = parse(examples_to_dataset("test", "it", rows)).datasets[0]

        assert dataset.language == "it"
        assert [example.type for example in dataset.examples] == ["query", "action"]
        first = dataset.examples[0]
        assert first.args == {"p_query": "String"}
        assert first.annotations.impl["name"] == "search_on_bing"
        assert first.annotations.impl["like_count"] == 2

    def test_missing_code_is_rejected(self):
        with pytest.raises(ValueError):
            examples_to_dataset("test", "en", [_row(5, "broken", "")])
