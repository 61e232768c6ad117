from goodcommit.config import Config
from goodcommit.prompt import (
    COMMIT_TYPES,
    PromptOptions,
    commit_system_prompt,
    commit_user_prompt,
    summary_system_prompt,
    summary_user_prompt,
)


def test_system_prompt_lists_grammar_and_types():
    prompt = commit_system_prompt(PromptOptions())
    assert "FORMAT: <type>(<scope>): <subject>" in prompt
    assert ", ".join(COMMIT_TYPES) in prompt
    assert "Single line only" in prompt
    assert "max 50 chars" in prompt
    assert "Do not use emoji." in prompt


def test_system_prompt_variants():
    multi = commit_system_prompt(PromptOptions(one_line=False, emoji=True))
    assert "optional blank line" in multi
    assert "right after ': '" in multi

    plain = commit_system_prompt(PromptOptions(conventional=False, lang="de"))
    assert "FORMAT:" not in plain
    assert "Write the subject and body in de." in plain


def test_corrective_instruction_is_appended_last():
    prompt = commit_system_prompt(
        PromptOptions(), corrective=["subject must be lowercase"]
    )
    tail = prompt.rstrip().splitlines()
    assert "CORRECTION: your previous answer was rejected because:" in prompt
    assert "- subject must be lowercase" in tail
    assert tail[-1] == "Answer again and follow the FORMAT exactly."


def test_prompts_are_deterministic():
    options = PromptOptions.from_config(Config(emoji=True, lang="fr"))
    assert commit_system_prompt(options) == commit_system_prompt(options)
    assert options.emoji and options.lang == "fr"


def test_user_prompt_embeds_diff_verbatim():
    diff = "diff --git a/x b/x\n+hello"
    assert commit_user_prompt(diff, PromptOptions()).endswith(diff)
    assert commit_user_prompt(diff, PromptOptions(lang="de")).startswith(
        "Generate the commit message in de."
    )


def test_summary_prompts():
    assert "bullet points" in summary_system_prompt()
    assert summary_user_prompt("a.py", "+x") == "Summarize changes for a.py:\n\n+x"
