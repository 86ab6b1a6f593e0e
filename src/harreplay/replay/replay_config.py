"""
HAR Replay Configuration

Loads the replay configuration document (JSON or YAML), finds it in the
working directory when no path is given, and compiles it into rules.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigCompileError
from .rules import CompiledRules, compile_rules


logger = logging.getLogger("harreplay.config")

DEFAULT_CONFIG_FILE = '.server-replay.json'
LEGACY_CONFIG_FILE = '.harmonica.json'


def find_config_file(directory: Optional[Path] = None) -> Optional[Path]:
    """
    Locate the conventional configuration file.

    Args:
        directory: Directory to search (defaults to the working directory)

    Returns:
        Path of the config file, or None when there is none
    """
    directory = Path(directory) if directory is not None else Path.cwd()

    candidate = directory / DEFAULT_CONFIG_FILE
    if candidate.exists():
        return candidate

    legacy = directory / LEGACY_CONFIG_FILE
    if legacy.exists():
        logger.warning(f"{LEGACY_CONFIG_FILE} is deprecated, use {DEFAULT_CONFIG_FILE} instead")
        return legacy

    return None


@dataclass
class ReplayConfig:
    """
    A loaded configuration document.

    Example:
        config = ReplayConfig.from_file('.server-replay.json')
        rules = config.compile()
        local_path = rules.map_url('http://example.com/static/app.js')
    """

    document: Optional[Dict[str, Any]] = None
    source: Optional[Path] = None
    resolve_root: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_file(cls, path: str) -> 'ReplayConfig':
        """
        Load a configuration file; `.yaml`/`.yml` files are parsed as YAML, anything else as JSON.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigCompileError: If the file cannot be parsed
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()

        try:
            if path.suffix.lower() in ('.yaml', '.yml'):
                document = yaml.safe_load(text)
            else:
                document = json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigCompileError(f"Could not parse config file {path}: {e}") from e

        return cls(document=document, source=path, resolve_root=path.resolve().parent)

    @classmethod
    def discover(cls, path: Optional[str] = None, directory: Optional[Path] = None) -> 'ReplayConfig':
        """
        Load `path` if given, else the conventional config file, else an empty config.

        Args:
            path: Explicit config file path
            directory: Directory searched when no path is given

        Returns:
            ReplayConfig
        """
        if path:
            return cls.from_file(path)

        found = find_config_file(directory)
        if found is not None:
            return cls.from_file(str(found))

        return cls(resolve_root=Path(directory) if directory is not None else Path.cwd())

    def compile(self) -> CompiledRules:
        """Compile the document; raises ConfigCompileError when it is invalid."""
        return compile_rules(self.document)

    def describe(self) -> str:
        if self.source is None:
            return "No config file"
        return f"Using config file from {self.source}"
