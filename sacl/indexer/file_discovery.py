"""Source file discovery, path validation and import target resolution."""

import fnmatch
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional

from ..errors import PathValidationError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = [
    ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".py", ".java",
    ".c", ".h", ".cpp", ".hpp", ".cc", ".cs", ".go", ".rs",
]

DEFAULT_EXCLUDE_DIRS = {
    "node_modules",
    ".git",
    "dist",
    "build",
    "coverage",
    "__pycache__",
    ".pytest_cache",
    "venv",
    ".venv",
    "vendor",
    "test",
    "tests",
    "__tests__",
}

DEFAULT_EXCLUDE_FILES = ["*.test.*", "*.spec.*", "test_*.py"]

_MODULE_NAME = re.compile(r"^[A-Za-z_][\w]*(\.[A-Za-z_][\w]*)*$")


def _is_within(root: str, path: str) -> bool:
    return os.path.commonpath([root, path]) == root


class FileDiscovery:
    """Enumerates and reads source files under a repository root."""

    def __init__(
        self,
        root: str,
        extensions: Optional[Iterable[str]] = None,
        exclude_dirs: Optional[Iterable[str]] = None,
        exclude_files: Optional[Iterable[str]] = None,
        follow_gitignore: bool = True,
    ):
        """Initialize file discovery.

        Args:
            root: Repository root directory
            extensions: Source file extensions to include
            exclude_dirs: Directory names skipped anywhere below the root
            exclude_files: Filename glob patterns to skip
            follow_gitignore: Whether to respect the root .gitignore
        """
        self.root = os.path.normpath(os.path.abspath(root))
        self.real_root = os.path.realpath(self.root)
        self.extensions = [ext.lower() for ext in (extensions or DEFAULT_EXTENSIONS)]
        self.exclude_dirs = set(exclude_dirs) if exclude_dirs is not None else DEFAULT_EXCLUDE_DIRS
        self.exclude_files = (
            list(exclude_files) if exclude_files is not None else DEFAULT_EXCLUDE_FILES
        )
        self.follow_gitignore = follow_gitignore

    def _load_gitignore(self, root: Path):
        from gitignore_parser import parse_gitignore

        gitignore_path = root / ".gitignore"
        if not gitignore_path.exists():
            return None
        try:
            matcher = parse_gitignore(gitignore_path)
            logger.info(f"Loaded .gitignore from {gitignore_path}")
            return matcher
        except Exception as e:
            logger.warning(f"Error parsing .gitignore: {e}")
            return None

    def resolves_inside(self, file_path: str) -> bool:
        """Whether the file, with symlinks resolved, lies under the repository root."""
        return _is_within(self.real_root, os.path.realpath(file_path))

    def is_source_file(self, file_path: str) -> bool:
        name = os.path.basename(file_path)
        if Path(name).suffix.lower() not in self.extensions:
            return False
        return not any(fnmatch.fnmatch(name, pattern) for pattern in self.exclude_files)

    def list_source_files(self, root: Optional[str] = None) -> List[str]:
        """Recursively list supported source files.

        Args:
            root: Directory to scan (the repository root by default)

        Returns:
            Sorted absolute file paths
        """
        dir_path = Path(os.path.normpath(os.path.abspath(root or self.root)))
        if not dir_path.is_dir():
            logger.warning(f"Repository path does not exist: {dir_path}")
            return []

        gitignore_matcher = self._load_gitignore(dir_path) if self.follow_gitignore else None

        files = []
        for file_path in dir_path.rglob("*"):
            if not file_path.is_file():
                continue

            relative_parts = file_path.relative_to(dir_path).parts
            if any(part in self.exclude_dirs for part in relative_parts[:-1]):
                continue

            if not self.is_source_file(str(file_path)):
                continue

            if gitignore_matcher and gitignore_matcher(str(file_path)):
                continue

            if not self.resolves_inside(str(file_path)):
                logger.warning(f"Skipping {file_path}: symlink target is outside the repository")
                continue

            files.append(str(file_path))

        files.sort()
        logger.info(f"Found {len(files)} source files in {dir_path}")
        return files

    def read_file(self, file_path: str) -> str:
        with open(file_path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()

    def validate_path(self, file_path: str) -> str:
        """Canonicalize a path and ensure it lies under the repository root.

        Relative paths are taken relative to the root.

        Symlinks are resolved for the containment check, so a link inside the
        repository that points outside it is rejected. The returned path keeps
        the link name.

        Raises:
            PathValidationError: If the path escapes the root
        """
        candidate = file_path if os.path.isabs(file_path) else os.path.join(self.root, file_path)
        candidate = os.path.normpath(candidate)
        if not _is_within(self.root, candidate) or not self.resolves_inside(candidate):
            raise PathValidationError(file_path, self.root)
        return candidate

    def resolve_import_target(self, target: str) -> str:
        """Map an extensionless canonical import target to an existing source file.

        Dotted module names (``pkg.module``) are tried relative to the root.
        Returns the target unchanged when nothing matches.
        """
        if not os.path.isabs(target):
            if not _MODULE_NAME.match(target):
                return target
            resolved = self.resolve_import_target(os.path.join(self.root, *target.split(".")))
            return resolved if os.path.isfile(resolved) else target
        if os.path.isfile(target):
            return target
        for ext in self.extensions:
            if os.path.isfile(target + ext):
                return target + ext
        for ext in self.extensions:
            index_file = os.path.join(target, "index" + ext)
            if os.path.isfile(index_file):
                return index_file
        init_file = os.path.join(target, "__init__.py")
        if os.path.isfile(init_file):
            return init_file
        return target
