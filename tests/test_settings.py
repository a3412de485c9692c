"""Tests for the YAML settings loader."""
import pytest

from config import settings as settings_module
from config.settings import DialogConfig, Settings, get_settings, load_settings
from dialogs.engine import ScriptedDialog
from dialogs.errors import ScriptError


@pytest.fixture(autouse=True)
def reset_cached_settings(monkeypatch):
    monkeypatch.setattr(settings_module, "_settings", None)


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "absent.yaml"))
        assert settings.app_name == "ConverseScript"
        assert settings.dialogs == DialogConfig()
        assert settings.scripts == {}

    def test_reads_dialog_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "app_name: Support Bot\n"
            "dialogs:\n"
            "  default_thread: main\n"
            "  multiple_separator: ' | '\n"
            "  max_steps_per_turn: 20\n"
            "  random_seed: 3\n"
        )
        settings = load_settings(str(path))

        assert settings.app_name == "Support Bot"
        assert settings.dialogs.default_thread == "main"
        assert settings.dialogs.multiple_separator == " | "
        assert settings.dialogs.max_steps_per_turn == 20
        assert settings.dialogs.random_seed == 3

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BOT_NAME", "Helper")
        monkeypatch.delenv("UNSET_VAR_FOR_TEST", raising=False)
        path = tmp_path / "settings.yaml"
        path.write_text(
            "app_name: ${BOT_NAME}\n"
            "scripts:\n"
            "  greeting:\n"
            "    default:\n"
            "      - text: Hi from ${BOT_NAME}, ${UNSET_VAR_FOR_TEST}\n"
        )
        settings = load_settings(str(path))

        assert settings.app_name == "Helper"
        line = settings.scripts["greeting"]["default"][0]
        assert line["text"] == "Hi from Helper, ${UNSET_VAR_FOR_TEST}"

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("debug: true\n")
        monkeypatch.setenv("SCRIPTFLOW_CONFIG", str(path))

        assert get_settings().debug is True

    def test_get_settings_is_cached(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SCRIPTFLOW_CONFIG", str(tmp_path / "absent.yaml"))
        assert get_settings() is get_settings()


@pytest.mark.asyncio
class TestDialogFromSettings:
    async def test_builds_dialog_from_scripts_section(self, tmp_path, make_turn):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "dialogs:\n"
            "  default_thread: main\n"
            "scripts:\n"
            "  welcome:\n"
            "    main:\n"
            "      - text: Hello {{vars.name}}\n"
        )
        settings = load_settings(str(path))
        dialog = ScriptedDialog.from_settings("welcome", "welcome_prompt", settings=settings)

        assert dialog.script.threads == ["main"]
        turn = make_turn()
        await dialog.begin_dialog(turn, {"name": "Ada"})
        assert turn.sent_text == ["Hello Ada"]

    async def test_unknown_script(self):
        with pytest.raises(ScriptError, match="No script configured"):
            ScriptedDialog.from_settings("missing", "p", settings=Settings())
