"""Pytest configuration and fixtures for colaplug tests."""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, Sequence, Tuple, Union

import pytest
import structlog

from colaplug.core.process import ProcessExecutor, ProcessResult
from colaplug.utils.exceptions import ProcessError


DEMO_MANIFEST: Dict[str, Any] = {
    "pkgName": "demo",
    "version": "1.0.0",
    "cmds": [{"name": "demo", "type": "executable", "executable": "bin/demo"}],
}


class FakeExecutor(ProcessExecutor):
    """Executor that records commands instead of running them.

    Responses are looked up by the longest matching command prefix;
    commands with no configured response succeed with empty output.
    A response may be a callable taking the command, which lets tests
    model state such as a registry that remembers pushed tags.
    """

    def __init__(
            self,
            responses: Optional[Mapping[Tuple[str, ...], Union[ProcessResult, Callable[[List[str]], ProcessResult]]]] = None
    ) -> None:
        self.responses = dict(responses or {})
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.envs: List[Optional[Mapping[str, str]]] = []
        self.cwds: List[Optional[str]] = []

    def set_response(self, prefix: Sequence[str], response: Any) -> None:
        self.responses[tuple(prefix)] = response

    def run(self, args, cwd=None, input=None, env=None, check=True) -> ProcessResult:
        command = [str(arg) for arg in args]
        self.calls.append(command)
        self.inputs.append(input)
        self.envs.append(env)
        self.cwds.append(str(cwd) if cwd else None)

        result = ProcessResult(0)
        for prefix in sorted(self.responses, key=len, reverse=True):
            if tuple(command[:len(prefix)]) == prefix:
                response = self.responses[prefix]
                result = response(command) if callable(response) else response
                break

        if check and not result.ok:
            raise ProcessError(
                f"Command failed with exit code {result.returncode}: {' '.join(command[:2])}: {result.stderr}",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def commands(self, *prefix: str) -> List[List[str]]:
        """Recorded commands starting with prefix."""
        return [call for call in self.calls if tuple(call[:len(prefix)]) == prefix]


def write_plugin(
        root: Path,
        dirname: str,
        manifest: Optional[Union[Dict[str, Any], str]] = None,
        readme: Optional[str] = None,
        files: Optional[Dict[str, str]] = None
) -> Path:
    """Create a plugin directory under root.

    A dict manifest is written as JSON, a string is written verbatim and
    None leaves the directory without a manifest.
    """
    plugin_dir = root / dirname
    plugin_dir.mkdir(parents=True, exist_ok=True)
    if manifest is not None:
        content = manifest if isinstance(manifest, str) else json.dumps(manifest, indent=2)
        (plugin_dir / "manifest.mf").write_text(content, encoding="utf-8")
    if readme is not None:
        (plugin_dir / "README.md").write_text(readme, encoding="utf-8")
    for rel_path, content in (files or {}).items():
        file_path = plugin_dir / rel_path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
    return plugin_dir


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo structlog and root logger changes made by a test."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    structlog.reset_defaults()
    for handler in list(root_logger.handlers):
        if handler not in handlers:
            root_logger.removeHandler(handler)
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def demo_manifest() -> Dict[str, Any]:
    return json.loads(json.dumps(DEMO_MANIFEST))


@pytest.fixture
def plugins_dir(tmp_path: Path) -> Path:
    """Plugins directory holding the demo plugin (no metadata, no README)."""
    root = tmp_path / "plugins"
    write_plugin(root, "demo", DEMO_MANIFEST, files={"bin/demo": "#!/bin/sh\necho demo\n"})
    return root


@pytest.fixture
def make_plugin() -> Callable[..., Path]:
    return write_plugin
