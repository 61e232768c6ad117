"""goodcommit - commit messages from staged diffs with an LLM."""

from importlib import import_module

__version__ = "0.1.0"

# Public API (lazy-exported so importing the package does not pull in the SDKs)
__all__ = [
    # Config
    "Config", "load_config",
    # Pipeline
    "generate_commit_message", "generate_from_repo", "PipelineResult",
    "GeneratedMessage",
    # Diff context
    "RawFileDiff", "DiffContext", "build_diff_context",
    # Git
    "GitRepo",
    # Exceptions
    "GoodCommitError", "ConfigError", "GitError", "CollectionError",
    "ProviderError", "ProviderErrorKind", "ValidationError",
    "EmptyMessageError", "PipelineTimeoutError",
]


def __getattr__(name: str):
    """Lazy attribute loader; provider SDKs are imported only when needed."""
    mapping = {
        "Config": ("goodcommit.config", "Config"),
        "load_config": ("goodcommit.config", "load_config"),
        "generate_commit_message": ("goodcommit.pipeline", "generate_commit_message"),
        "generate_from_repo": ("goodcommit.pipeline", "generate_from_repo"),
        "PipelineResult": ("goodcommit.pipeline", "PipelineResult"),
        "GeneratedMessage": ("goodcommit.sanitize", "GeneratedMessage"),
        "RawFileDiff": ("goodcommit.diff", "RawFileDiff"),
        "DiffContext": ("goodcommit.diff", "DiffContext"),
        "build_diff_context": ("goodcommit.diff", "build_diff_context"),
        "GitRepo": ("goodcommit.git", "GitRepo"),
        "GoodCommitError": ("goodcommit.exceptions", "GoodCommitError"),
        "ConfigError": ("goodcommit.exceptions", "ConfigError"),
        "GitError": ("goodcommit.exceptions", "GitError"),
        "CollectionError": ("goodcommit.exceptions", "CollectionError"),
        "ProviderError": ("goodcommit.exceptions", "ProviderError"),
        "ProviderErrorKind": ("goodcommit.exceptions", "ProviderErrorKind"),
        "ValidationError": ("goodcommit.exceptions", "ValidationError"),
        "EmptyMessageError": ("goodcommit.exceptions", "EmptyMessageError"),
        "PipelineTimeoutError": ("goodcommit.exceptions", "PipelineTimeoutError"),
    }
    if name in mapping:
        mod_name, attr = mapping[name]
        value = getattr(import_module(mod_name), attr)
        globals()[name] = value  # cache for future access
        return value
    raise AttributeError(f"module 'goodcommit' has no attribute {name!r}")
