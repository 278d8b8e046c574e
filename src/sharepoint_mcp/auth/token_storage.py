"""JSON file storage for the SharePoint OAuth token set.

Storage Location: ~/.sharepoint-mcp-tokens.json (override with SHAREPOINT_TOKEN_PATH)

The file holds a single token set. A missing or unreadable file means
"not authenticated" and is never an error. Writes go to a temporary file
in the same directory and are renamed into place, so a crash mid-write
leaves the previous token set intact.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from sharepoint_mcp.auth.models import TokenSet
from sharepoint_mcp.config import DEFAULT_TOKEN_PATH

logger = logging.getLogger(__name__)


class TokenStorage:
    """Persists one OAuth token set as a JSON file.

    This class is the only writer of the token file. It performs disk I/O
    only; it never talks to the network.

    Attributes:
        token_path: Path to the token JSON file.

    Example:
        ```python
        storage = TokenStorage()
        storage.save(token_set)
        current = storage.load()
        storage.clear()
        ```
    """

    def __init__(self, token_path: Path | None = None) -> None:
        """Initialize token storage.

        Args:
            token_path: Custom path for the token file. Defaults to
                ~/.sharepoint-mcp-tokens.json.
        """
        self.token_path = token_path or DEFAULT_TOKEN_PATH

    def exists(self) -> bool:
        return self.token_path.exists()

    def load(self) -> TokenSet | None:
        """Read the persisted token set.

        Returns:
            TokenSet if the file exists and parses, None otherwise.
        """
        if not self.token_path.exists():
            return None

        try:
            data = json.loads(self.token_path.read_text(encoding="utf-8"))
            token = TokenSet.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable token file {self.token_path}: {e}")
            return None

        logger.info("Loaded tokens from disk")
        return token

    def save(self, token: TokenSet) -> bool:
        """Write the token set, stamping ``saved_at``.

        Args:
            token: Token set to persist. Its ``saved_at`` is updated in place.

        Returns:
            True on success, False if the file could not be written.
        """
        token.saved_at = datetime.now(timezone.utc)
        payload = token.model_dump_json(by_alias=True, indent=2)

        try:
            self.token_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.token_path.name}.", dir=self.token_path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                # Owner read/write only (600)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, self.token_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning(f"Error saving tokens to {self.token_path}: {e}")
            return False

        logger.info("Saved tokens to disk")
        return True

    def clear(self) -> None:
        """Delete the token file. A missing file is not an error."""
        try:
            self.token_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Error clearing tokens at {self.token_path}: {e}")
