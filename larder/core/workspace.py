"""Workspace discovery and initialization.

A larder workspace is any directory containing a .larder/ directory, which
holds the workspace config.toml and the SQLite cache. Commands find it by
walking up from the current directory, similar to how git finds .git/.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from larder.domain.exceptions import LarderError
from larder.shared.config_io import create_default_config_file

logger = logging.getLogger(__name__)

LARDER_DIR_NAME = ".larder"


def find_larder_root(start_path: Path | None = None) -> Path | None:
    """Find the workspace root by walking up directories.

    Args:
        start_path: Directory to start searching from. Defaults to CWD.

    Returns:
        Absolute path to the directory containing .larder/, or None if not found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()
    while True:
        if (current / LARDER_DIR_NAME).is_dir():
            return current

        parent = current.parent
        if parent == current:
            # Reached filesystem root without finding .larder/
            return None
        current = parent


def find_workspace(start_path: Path | None = None) -> tuple[Path, Path]:
    """Find the workspace root and its .larder directory.

    Args:
        start_path: Directory to start searching from. Defaults to CWD.

    Returns:
        Tuple of (workspace_root, larder_dir).

    Raises:
        RuntimeError: If no parent directory holds a .larder/ directory.
    """
    root = find_larder_root(start_path)
    if root is None:
        raise RuntimeError(
            "Not in a larder workspace (or any parent directory)\n"
            "Run 'larder init' first"
        )
    return root, root / LARDER_DIR_NAME


@dataclass
class InitRequest:
    """Request to initialize a workspace.

    Attributes:
        root: Directory where .larder/ will be created
        force: If True, reinitialize even if .larder/ already exists
        base_url: Remote base URL written to the new config (default: built-in)
    """

    root: Path
    force: bool = False
    base_url: str | None = None


@dataclass
class InitResponse:
    """Response from init operation.

    Attributes:
        larder_dir: Path to the created .larder/ directory (None on failure).
        config_path: Path to the created config.toml (None on failure).
        db_path: Path to the created cache database (None on failure).
        was_reinitialized: True if an existing .larder/ was reused.
        success: Whether initialization succeeded.
        error: Error message if initialization failed.
        already_exists: True if failed because .larder/ already exists.
    """

    larder_dir: Path | None
    config_path: Path | None
    db_path: Path | None
    was_reinitialized: bool = False
    success: bool = True
    error: str | None = None
    already_exists: bool = False

    @classmethod
    def create_error(cls, message: str, *, already_exists: bool = False) -> "InitResponse":
        return cls(
            larder_dir=None,
            config_path=None,
            db_path=None,
            success=False,
            error=message,
            already_exists=already_exists,
        )


class InitUseCase:
    """Creates the .larder/ directory with config.toml and an empty cache.

    Errors are returned in the response rather than raised, except for
    KeyboardInterrupt and SystemExit.
    """

    def __init__(self, db_initializer: Callable[[Path], None]) -> None:
        """Initialize the use case.

        Args:
            db_initializer: Creates the cache database schema at a path.
        """
        self._db_initializer = db_initializer

    def execute(self, request: InitRequest) -> InitResponse:
        larder_dir = request.root / LARDER_DIR_NAME
        config_path = larder_dir / "config.toml"
        db_path = larder_dir / "cache.db"

        try:
            was_reinitialized = False
            if larder_dir.exists():
                if not request.force:
                    return InitResponse.create_error(
                        f"Directory {larder_dir} already exists. "
                        "Use --force to reinitialize.",
                        already_exists=True,
                    )
                was_reinitialized = True

            larder_dir.mkdir(parents=True, exist_ok=True)
            create_default_config_file(config_path, base_url=request.base_url)
            self._db_initializer(db_path)
            logger.debug("Initialized workspace at %s", larder_dir)

            return InitResponse(
                larder_dir=larder_dir,
                config_path=config_path,
                db_path=db_path,
                was_reinitialized=was_reinitialized,
            )
        except (KeyboardInterrupt, SystemExit):
            raise
        except LarderError as e:
            logger.error("Initialization failed: %s", e.message)
            return InitResponse.create_error(e.message)
        except OSError as e:
            logger.error("I/O error during initialization: %s", e)
            return InitResponse.create_error(
                f"I/O error: {e}. Check file permissions, disk space, and filesystem access."
            )
        except Exception:
            logger.exception("Unexpected error during initialization")
            return InitResponse.create_error(
                "Internal error during initialization. Check logs for details."
            )
