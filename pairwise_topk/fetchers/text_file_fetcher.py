"""
Text file item fetcher implementation.

Reads candidate items from a plain text file, one item per line.
"""

from collections.abc import Sequence
from pathlib import Path

from typing_extensions import override

from ..exceptions import ValidationError
from ..interfaces import ItemSource
from ..logging_config import get_logger


class TextFileFetcher(ItemSource[str]):
    """
    Item source backed by a text file.

    Blank lines and lines starting with '#' are skipped; surrounding
    whitespace is stripped. Items keep their file order.
    """

    def __init__(self, path: Path, encoding: str = "utf-8"):
        """
        Initialize text file fetcher.

        Args:
            path: File with one item per line
            encoding: Text encoding of the file
        """
        self.path: Path = Path(path)
        self.encoding: str = encoding

        # Setup logger
        self.logger = get_logger("text_file_fetcher")

        if not self.path.exists():
            raise FileNotFoundError(f"Items file does not exist: {self.path}")

        if not self.path.is_file():
            raise IsADirectoryError(f"Path is not a file: {self.path}")

        self._cache: list[str] | None = None

    def _load_items(self) -> list[str]:
        """Load all items from the file into cache."""
        if self._cache is not None:
            return self._cache

        items = list[str]()
        seen = set[str]()
        for line_number, line in enumerate(self.path.read_text(encoding=self.encoding).splitlines(), start=1):
            item = line.strip()
            if not item or item.startswith("#"):
                continue
            if item in seen:
                raise ValidationError(f"Duplicate item {item!r} on line {line_number} of {self.path}")
            seen.add(item)
            items.append(item)

        if not items:
            self.logger.warning(f"No items found in {self.path}")

        self._cache = items
        self.logger.info(f"Loaded {len(items)} items from {self.path}")
        return items

    @override
    def list_items(self) -> Sequence[str]:
        """Return all items in file order."""
        return list(self._load_items())

    def get_item_count(self) -> int:
        """Get total number of available items."""
        return len(self._load_items())

    def clear_cache(self) -> None:
        """Clear the item cache and force reload on next access."""
        self._cache = None
