"""Tests for the Script Store: building and validating threads."""
import pytest
import yaml

from dialogs.errors import ScriptError, UnknownThreadError
from dialogs.models import ActionLine, CollectOption, MessageLine, OptionType, QuestionLine
from dialogs.script import Script, parse_line


class TestAddLine:
    def test_creates_thread_and_keeps_order(self):
        script = Script()
        script.add_line("one", "intro")
        script.add_line("two", "intro")
        script.add_line("three")

        assert script.threads == ["intro", "default"]
        assert [l.text for l in script.thread("intro")] == [["one"], ["two"]]
        assert script.thread("default")[0].text == ["three"]

    def test_string_becomes_single_variant(self):
        line = parse_line("Hello")
        assert isinstance(line, MessageLine)
        assert line.text == ["Hello"]

    def test_text_string_in_dict_is_wrapped(self):
        line = parse_line({"text": "Hello", "action": "complete"})
        assert isinstance(line, MessageLine)
        assert line.text == ["Hello"]
        assert line.action == "complete"

    def test_bare_action_becomes_action_line(self):
        line = parse_line({"action": "stop"})
        assert isinstance(line, ActionLine)
        assert not line.has_body

    def test_collect_becomes_question(self):
        line = parse_line({"text": "Name?", "collect": {"key": "name"}})
        assert isinstance(line, QuestionLine)
        assert line.collect.key == "name"
        assert line.collect.multiple is False

    def test_execute_script_requires_target(self):
        with pytest.raises(ScriptError, match="execute"):
            parse_line({"action": "execute_script"})

    def test_execute_script_with_target(self):
        line = parse_line({"action": "execute_script", "execute": {"script": "other"}})
        assert line.execute.script == "other"
        assert line.execute.thread == "default"

    def test_unknown_thread_lookup(self):
        script = Script()
        with pytest.raises(UnknownThreadError):
            script.thread("missing")
        assert "missing" not in script

    def test_len_counts_threads(self):
        script = Script.from_config({"default": ["a"], "other": ["b", "c"]})
        assert len(script) == 2


class TestAddQuestion:
    def test_options_default_to_string_type(self):
        script = Script()
        line = script.add_question(
            "Continue?",
            [{"pattern": "^yes$", "action": "thanks"}, {"default": True, "action": "stop"}],
            key="answer",
        )
        assert isinstance(line, QuestionLine)
        assert [o.type for o in line.collect.options] == [OptionType.STRING, OptionType.STRING]
        assert line.collect.key == "answer"

    def test_explicit_regex_type_kept(self):
        script = Script()
        line = script.add_question("Code?", [{"type": "regex", "pattern": r"^\d{4}$", "action": "next"}])
        assert line.collect.options[0].type == OptionType.REGEX

    def test_callable_becomes_default_handler(self):
        async def handler(response, convo, bot):
            pass

        script = Script()
        line = script.add_question("Anything?", handler, key="anything")
        assert len(line.collect.options) == 1
        option = line.collect.options[0]
        assert option.default is True
        assert option.handler is handler

    def test_multiple_flag(self):
        script = Script()
        line = script.add_question("Notes?", key="notes", thread_name="notes", multiple=True)
        assert line.collect.multiple is True
        assert script.thread("notes")[0] is line

    def test_accepts_prebuilt_options(self):
        script = Script()
        option = CollectOption(pattern="ok", action="next")
        line = script.add_question({"text": ["Ok?"], "action": "ignored"}, [option])
        assert line.collect.options == [option]
        assert line.text == ["Ok?"]

    def test_two_defaults_rejected(self):
        script = Script()
        with pytest.raises(ScriptError, match="default"):
            script.add_question("?", [{"default": True, "action": "a"}, {"default": True, "action": "b"}])

    def test_pattern_required_for_non_default(self):
        script = Script()
        with pytest.raises(ScriptError, match="pattern"):
            script.add_question("?", [{"action": "next"}])

    def test_invalid_regex_rejected(self):
        script = Script()
        with pytest.raises(ScriptError, match="invalid pattern"):
            script.add_question("?", [{"pattern": "([a-z", "action": "next"}])

    def test_say_and_ask_use_default_thread(self):
        script = Script(default_thread="main")
        script.say("Hello")
        script.ask("Name?", key="name")
        assert [l.kind for l in script.thread("main")] == ["message", "question"]


class TestFromConfig:
    def test_loads_yaml_script(self):
        raw = yaml.safe_load("""
        default:
          - text: Hi
          - text: ["What's your name?", "Your name?"]
            collect:
              key: name
              options:
                - pattern: "^skip$"
                  action: skipped
                - default: true
                  action: next
          - text: "Hi {{vars.name}}"
        skipped:
          - text: No problem
          - action: complete
        """)
        script = Script.from_config(raw)

        assert script.threads == ["default", "skipped"]
        default = script.thread("default")
        assert len(default) == 3
        assert isinstance(default[1], QuestionLine)
        assert default[1].text == ["What's your name?", "Your name?"]
        assert default[1].collect.options[0].action == "skipped"
        assert isinstance(script.thread("skipped")[1], ActionLine)

    def test_invalid_line_in_config(self):
        with pytest.raises(ScriptError):
            Script.from_config({"default": [{"collect": {"key": "x", "options": [{"action": "next"}]}}]})
