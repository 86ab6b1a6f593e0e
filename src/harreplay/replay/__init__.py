"""
HAR Replay Configuration Module

Configuration loading and the rule compiler.

This module provides:
- Config file discovery and JSON/YAML loading
- Compilation of mappings, replacements and header transforms
"""

from .replay_config import ReplayConfig, find_config_file, DEFAULT_CONFIG_FILE, LEGACY_CONFIG_FILE
from .rules import (
    CompiledRules,
    compile_rules,
    compile_mapping,
    compile_replacement,
    compile_header_transform,
    expand_template,
    parse_matcher,
    LiteralMatcher,
    RegexMatcher,
    FieldReference,
)

__all__ = [
    'ReplayConfig',
    'find_config_file',
    'DEFAULT_CONFIG_FILE',
    'LEGACY_CONFIG_FILE',
    'CompiledRules',
    'compile_rules',
    'compile_mapping',
    'compile_replacement',
    'compile_header_transform',
    'expand_template',
    'parse_matcher',
    'LiteralMatcher',
    'RegexMatcher',
    'FieldReference',
]
