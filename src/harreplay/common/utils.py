"""
HAR Replay Common Utilities

Trace loading shared by the server and the CLI.
"""

import json
import logging
from pathlib import Path
from typing import List, Dict, Any

from ..errors import TraceLoadError


logger = logging.getLogger("harreplay.loader")


class TraceLoader:
    """
    Standardized loader for HAR trace files.

    Handles the JSON shapes a trace can come in:
    - Format 1: {"log": {"entries": [...]}}  (HTTP Archive)
    - Format 2: {"entries": [...]}           (bare log object)
    - Format 3: [...]                        (direct list of entries)

    Example:
        loader = TraceLoader("session.har")
        entries = loader.load()

        for entry in entries:
            print(entry['request']['url'])
    """

    def __init__(self, file_path: str):
        """
        Initialize trace loader.

        Args:
            file_path: Path to HAR file
        """
        self.file_path = Path(file_path)

    def load(self) -> List[Dict[str, Any]]:
        """
        Load HAR entries from file.

        Returns:
            List of HAR entry dictionaries, in recorded order

        Raises:
            FileNotFoundError: If trace file doesn't exist
            TraceLoadError: If JSON format is unrecognized
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Trace file not found: {self.file_path}")

        with open(self.file_path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise TraceLoadError(f"Invalid JSON in {self.file_path}: {e}") from e

        if isinstance(data, dict) and isinstance(data.get('log'), dict):
            data = data['log']

        if isinstance(data, dict):
            if 'entries' not in data:
                raise TraceLoadError(
                    f"Unexpected JSON format in {self.file_path}. "
                    f"Expected a HAR document with 'log.entries', "
                    f"or a list of entries. Found keys: {list(data.keys())}"
                )
            data = data['entries']

        if not isinstance(data, list):
            raise TraceLoadError(
                f"Unexpected JSON format in {self.file_path}. "
                f"Expected entries to be a list, got {type(data).__name__}"
            )

        return data

    def validate_entry(self, entry: Any) -> bool:
        """
        Validate that an entry has the fields replay needs.

        Args:
            entry: HAR entry to validate

        Returns:
            True if entry has a request URL
        """
        if not isinstance(entry, dict):
            return False
        request = entry.get('request')
        return isinstance(request, dict) and bool(request.get('url'))

    def load_and_validate(self) -> List[Dict[str, Any]]:
        """
        Load entries and filter out invalid ones.

        Returns:
            List of valid HAR entries
        """
        entries = self.load()
        valid_entries = [e for e in entries if self.validate_entry(e)]

        if len(valid_entries) < len(entries):
            invalid_count = len(entries) - len(valid_entries)
            logger.warning(f"Skipped {invalid_count} entries without a request URL in {self.file_path}")

        return valid_entries
