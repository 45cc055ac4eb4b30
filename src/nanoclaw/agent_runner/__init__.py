"""Agent runner: runs one agent invocation as a supervised host subprocess.

Selects a backend, composes a per-group environment, spawns the process,
races its exit against a timeout, extracts a structured result from its
stdout, and writes a diagnostic log file.

This package is split into focused submodules:
  _runtime        - Backend selection (group override > setting > default)
  _environment    - Per-group directories, HOME isolation, child env
  _mounts         - Validated extra mounts exposed as symlinks
  _serialization  - JSON boundary crossing (AgentInput/AgentOutput <-> dict)
  _extract        - Sentinel-envelope and transcript-tail output parsing
  _process        - Byte-capped capture, timeout race, single resolution
  _plan           - Launch plans and configuration errors
  _codex          - Direct Codex CLI backend
  _logging        - Run log file writing
  _snapshots      - IPC snapshot file helpers
  _orchestrator   - Main entry point (run_agent) and the agent-runner backend
"""

from nanoclaw.agent_runner._environment import AgentPaths, build_agent_env, prepare_agent_paths
from nanoclaw.agent_runner._extract import extract_transcript_answer, parse_sentinel_output
from nanoclaw.agent_runner._mounts import MountValidator
from nanoclaw.agent_runner._orchestrator import resolve_timeout, run_agent
from nanoclaw.agent_runner._plan import AgentConfigError
from nanoclaw.agent_runner._process import OnProcess
from nanoclaw.agent_runner._runtime import SettingLookup, resolve_agent_runtime
from nanoclaw.agent_runner._snapshots import write_groups_snapshot, write_tasks_snapshot

__all__ = [
    "AgentConfigError",
    "AgentPaths",
    "MountValidator",
    "OnProcess",
    "SettingLookup",
    "build_agent_env",
    "extract_transcript_answer",
    "parse_sentinel_output",
    "prepare_agent_paths",
    "resolve_agent_runtime",
    "resolve_timeout",
    "run_agent",
    "write_groups_snapshot",
    "write_tasks_snapshot",
]
