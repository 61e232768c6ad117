import pytest

import goodcommit.cli as cli_mod
from goodcommit.exceptions import CollectionError, ConfigError, GitError
from goodcommit.main import main as entry_main
from goodcommit.pipeline import PipelineResult
from goodcommit.sanitize import GeneratedMessage


class _FakeRepo:
    def __init__(self, path=None):  # noqa: D401
        self.repo_path = path

    @property
    def root(self):
        return None

    def staged_records(self):  # noqa: D401
        return []


@pytest.fixture
def fake_repo(monkeypatch):
    monkeypatch.setattr(cli_mod, "GitRepo", _FakeRepo)


def _patch_pipeline(monkeypatch, result, seen=None):
    def fake_generate(records, config, **kwargs):
        if seen is not None:
            seen["config"] = config
            seen["kwargs"] = kwargs
        return result

    monkeypatch.setattr(cli_mod, "generate_commit_message", fake_generate)


def test_prints_message_and_exits_zero(monkeypatch, capsys, fake_repo):
    seen = {}
    result = PipelineResult(
        run_id="r", message=GeneratedMessage("feat: add x", validated=True)
    )
    _patch_pipeline(monkeypatch, result, seen)

    code = cli_mod.main(["--provider", "openai", "--emoji", "--multi-line", "--lang", "de"])

    assert code == 0
    assert capsys.readouterr().out == "feat: add x\n"
    config = seen["config"]
    assert config.provider == "openai"
    assert config.model == "gpt-4o-mini"
    assert config.emoji is True
    assert config.one_line is False
    assert config.lang == "de"
    assert config.conventional is True
    assert callable(seen["kwargs"]["on_progress"])


def test_pipeline_failure_exits_one(monkeypatch, capsys, fake_repo):
    err = CollectionError("No staged changes found.", nothing_staged=True)
    result = PipelineResult(run_id="r", error=err, error_message=str(err))
    _patch_pipeline(monkeypatch, result)

    code = cli_mod.main([])

    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert "error [collect]: No staged changes found." in captured.err


def test_warnings_go_to_stderr(monkeypatch, capsys, fake_repo):
    result = PipelineResult(
        run_id="r",
        message=GeneratedMessage("fix: y", validated=True),
        warnings=["only first 40 files used for AI summary"],
    )
    _patch_pipeline(monkeypatch, result)
    assert cli_mod.main([]) == 0
    assert "warning: only first 40 files used" in capsys.readouterr().err


def test_config_error_exits_two(monkeypatch, capsys, fake_repo):
    monkeypatch.setenv("GOODCOMMIT_MAX_INPUT_TOKENS", "not-a-number")
    assert cli_mod.main([]) == 2
    assert "Invalid value for max_input_tokens" in capsys.readouterr().err


def test_config_error_from_pipeline_exits_two(monkeypatch, fake_repo):
    err = ConfigError("budget too small", stage="budget")
    _patch_pipeline(monkeypatch, PipelineResult(run_id="r", error=err, error_message=str(err)))
    assert cli_mod.main([]) == 2


def test_not_a_repository_exits_one(monkeypatch, capsys):
    def broken_repo(path=None):
        raise GitError(f"Not a Git repository: {path}")

    monkeypatch.setattr(cli_mod, "GitRepo", broken_repo)
    assert cli_mod.main(["--repo", "/nowhere"]) == 1
    assert "Not a Git repository: /nowhere" in capsys.readouterr().err


def test_interrupt_exits_130(monkeypatch, capsys, fake_repo):
    def interrupted(records, config, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli_mod, "generate_commit_message", interrupted)
    assert cli_mod.main([]) == 130
    assert capsys.readouterr().out == ""


def test_save_config_writes_file(monkeypatch, tmp_path, fake_repo):
    monkeypatch.setattr(_FakeRepo, "root", property(lambda self: tmp_path))
    _patch_pipeline(
        monkeypatch,
        PipelineResult(run_id="r", message=GeneratedMessage("feat: z", validated=True)),
    )
    assert cli_mod.main(["--save-config", "--model", "llama3"]) == 0
    assert '"model": "llama3"' in (tmp_path / ".goodcommit" / "config.json").read_text()


def test_main_entrypoint_delegates(monkeypatch):
    monkeypatch.setattr("goodcommit.main.cli_main", lambda: 7)
    assert entry_main() == 7


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as ei:
        cli_mod.main(["--version"])
    assert ei.value.code == 0
    assert "goodcommit" in capsys.readouterr().out
