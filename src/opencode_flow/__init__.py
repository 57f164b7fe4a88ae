"""Sequential OpenCode agent pipelines for story-driven feature work.

This package drives a configured list of OpenCode agents against an
isolated git worktree per story:
- Pipeline configuration loaded from .opencode-flow/pipeline.yaml
- Per-story git worktrees on flow/<storyId> branches
- Crash-safe JSON run state under .opencode-flow/runs/
- Prompt templating with {{variable}} placeholders
- Sequential multi-story orchestration with an aggregated summary
"""

__version__ = "0.1.0"
