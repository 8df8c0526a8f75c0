"""Unit tests for the ThingTalk parser, printer and manifest conversion."""

import pytest

from almond_cloud.thingtalk import (
    ArgMap,
    Measure,
    ThingTalkSyntaxError,
    from_manifest,
    parse,
    to_manifest,
)
from tests.conftest import BING_MANIFEST, TWITTER_CODE


class TestClassParsing:
    """Test parsing of class definitions."""

    def test_parse_class_structure(self):
        """Test that imports, functions and annotations are recognized."""
        program = parse(TWITTER_CODE)

        assert len(program.classes) == 1
        class_def = program.classes[0]
        assert class_def.kind == "com.twitter"
        assert class_def.annotations.nl["name"] == "Twitter"
        assert class_def.loader.module == "org.thingpedia.v2"
        assert class_def.config.module == "org.thingpedia.config.oauth2"
        assert class_def.config.in_params == {"client_id": "xxx", "client_secret": "yyy"}

    def test_parse_functions(self):
        """Test query and action definitions."""
        class_def = parse(TWITTER_CODE).classes[0]

        timeline = class_def.queries["home_timeline"]
        assert timeline.is_monitorable
        assert timeline.is_list
        assert [arg.name for arg in timeline.args] == ["text", "author"]
        assert timeline.get_arg("author").type == "Entity(tt:username)"
        assert timeline.annotations.impl["poll_interval"] == Measure(600000, "ms")

        post = class_def.actions["post"]
        status = post.get_arg("status")
        assert status.is_input and status.required
        assert status.annotations.nl["prompt"] == "What do you want to tweet?"

    def test_prettyprint_roundtrip(self):
        """Test that printing a parsed class and parsing it again is stable."""
        first = parse(TWITTER_CODE).prettyprint()
        second = parse(first).prettyprint()

        assert first == second

    def test_abstract_class(self):
        """Test abstract classes with extends."""
        program = parse("abstract class @org.thingpedia.iot.light-bulb extends @org.thingpedia.iot.switch { }")

        class_def = program.classes[0]
        assert class_def.is_abstract
        assert class_def.kind == "org.thingpedia.iot.light-bulb"
        assert class_def.extends == ["org.thingpedia.iot.switch"]

    def test_syntax_error(self):
        """Test that malformed classes raise ThingTalkSyntaxError."""
        with pytest.raises(ThingTalkSyntaxError):
            parse("class @com.broken { query foo(out x String); }")


class TestDatasetParsing:
    """Test parsing of datasets and declarations."""

    def test_parse_dataset_examples(self):
        """Test example heads, bodies and annotations."""
        program = parse(
            'dataset @com.bing language "en" {\n'
            '    query (p_query :String) := @com.bing.web_search(query=p_query)\n'
            '    #_[utterances=["search $p_query on bing"]]\n'
            '    #[id=7] #[click_count=3];\n'
            '    stream := monitor(@com.twitter.home_timeline());\n'
            '}'
        )

        dataset = program.datasets[0]
        assert dataset.name == "com.bing"
        assert dataset.language == "en"
        assert len(dataset.examples) == 2

        first = dataset.examples[0]
        assert first.type == "query"
        assert first.args == {"p_query": "String"}
        assert first.value == "@com.bing.web_search(query=p_query)"
        assert first.utterances == ["search $p_query on bing"]
        assert first.id == 7
        assert first.annotations.impl["click_count"] == 3

        second = dataset.examples[1]
        assert second.type == "stream"
        assert second.value == "monitor(@com.twitter.home_timeline())"

    def test_parse_declaration(self):
        """Test let declarations with parameters."""
        program = parse("let query x(p_query :String) := @com.bing.web_search(query=p_query);")

        declaration = program.declarations[0]
        assert declaration.type == "query"
        assert declaration.name == "x"
        assert declaration.args == {"p_query": "String"}
        assert declaration.prettyprint() == "let query x(p_query :String) := @com.bing.web_search(query=p_query);"

    def test_parse_legacy_lambda_declaration(self):
        """Test the apiVersion=1 lambda form."""
        program = parse("let table x := \\(p_query :String) -> @com.bing.web_search(query=p_query);")

        declaration = program.declarations[0]
        assert declaration.type == "table"
        assert declaration.args == {"p_query": "String"}
        assert declaration.value == "@com.bing.web_search(query=p_query)"


class TestManifest:
    """Test manifest <-> class conversion."""

    def test_from_manifest(self):
        """Test that a manifest becomes an equivalent class."""
        class_def = from_manifest("com.bing", BING_MANIFEST)

        assert class_def.kind == "com.bing"
        assert class_def.config.module == "org.thingpedia.config.none"
        assert class_def.annotations.nl["name"] == "Bing Search"

        search = class_def.queries["web_search"]
        assert search.is_list
        assert search.is_monitorable
        assert search.canonical == "web search on bing"
        assert search.get_arg("query").required
        assert not search.get_arg("title").is_input

    def test_from_manifest_form_params(self):
        """Test that form parameters become a makeArgMap config."""
        manifest = {
            "params": {"hostname": ["Host", "text"], "password": ["Password", "password"]},
            "auth": {"type": "none"},
        }
        class_def = from_manifest("com.example.router", manifest)

        assert class_def.config.module == "org.thingpedia.config.form"
        assert class_def.config.in_params["params"] == ArgMap({"hostname": "String", "password": "Password"})

    def test_manifest_roundtrip_through_text(self):
        """Test manifest -> ThingTalk text -> manifest."""
        class_def = from_manifest("com.bing", {**BING_MANIFEST, "version": 3})
        manifest = to_manifest(parse(class_def.prettyprint()))

        assert manifest["version"] == 3
        assert manifest["auth"] == {"type": "none"}
        assert manifest["name"] == "Bing Search"
        search = manifest["queries"]["web_search"]
        assert search["poll_interval"] == 0
        assert search["args"][0] == {
            "name": "query",
            "type": "String",
            "question": "What do you want to search?",
            "required": True,
            "is_input": True,
        }

    def test_to_manifest_oauth(self):
        """Test oauth2 config and poll intervals in manifests."""
        manifest = to_manifest(parse(TWITTER_CODE))

        assert manifest["auth"] == {"type": "oauth2", "client_id": "xxx", "client_secret": "yyy"}
        assert manifest["queries"]["home_timeline"]["poll_interval"] == 600000
        assert manifest["actions"]["post"]["confirm"] is True
