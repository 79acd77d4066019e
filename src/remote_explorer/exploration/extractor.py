"""Path extraction from text content.

A declarative, ordered rule table is applied to every text file; rules are
independent and a path may be matched by several of them. Source-specific
extractors add candidates for ``/etc/passwd`` and ``/proc/*`` files, and
report ``/proc/mounts`` entries without turning them into candidates.

Candidates that still contain ``$VAR`` / ``${VAR}`` references are returned
as-is; resolving them is the VariableResolver's job.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from ..logging_config import get_logger

logger = get_logger(__name__)

_PATH_CHARS = r"[\w\-./${}]"


@dataclass(frozen=True)
class ExtractionRule:
    """One regex rule. Group 1 of ``pattern`` is the candidate path."""

    name: str
    pattern: re.Pattern
    require_file_shape: bool = False  # literal matches must pass looks_like_file


EXTRACTION_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(
        "absolute",
        re.compile(r"(?:^|[\s\"'=])(/[\w\-.]+(?:/[\w\-.]+)*/?)", re.MULTILINE),
        require_file_shape=True,
    ),
    ExtractionRule(
        "export",
        re.compile(rf"export\s+\w+=[\"']?({_PATH_CHARS}+)"),
        require_file_shape=True,
    ),
    ExtractionRule(
        "shell-vars",
        re.compile(rf"(\$\{{?\w+\}}?/{_PATH_CHARS}+)"),
    ),
    ExtractionRule(
        "sources",
        re.compile(rf"(?:^|[\s;])(?:source|include|require|\.)\s+[\"']?({_PATH_CHARS}+)", re.MULTILINE),
    ),
    ExtractionRule(
        "file-tests",
        re.compile(rf"\[\s*!?\s*-[frx]\s+[\"']?({_PATH_CHARS}+)[\"']?\s*\]"),
    ),
    ExtractionRule(
        "redirections",
        re.compile(rf"(?:>>?|<)\s*({_PATH_CHARS}+)"),
        require_file_shape=True,
    ),
    ExtractionRule(
        "tee",
        re.compile(rf"\|\s*tee\s+(?:-a\s+)?({_PATH_CHARS}+)"),
        require_file_shape=True,
    ),
    ExtractionRule(
        "file-commands",
        re.compile(rf"\b(?:touch|rm|cat|cp|mv|ln)\s+(?:-[a-z]+\s+)*({_PATH_CHARS}+)"),
    ),
    ExtractionRule(
        "config-refs",
        re.compile(r"\b(?:log|file|path|config)[:=]\s*([^\s,;\"']+)", re.IGNORECASE),
        require_file_shape=True,
    ),
)

_SEARCH_PATH_ASSIGNMENT = re.compile(r"\b(?:LD_LIBRARY_PATH|PATH)=([^\n]+)")

_VIRTUAL_FILESYSTEMS = frozenset(
    {"devtmpfs", "proc", "tmpfs", "sysfs", "debugfs", "pstore", "devpts", "selinuxfs", "cgroup"}
)
_VIRTUAL_MOUNT_PREFIXES = ("/dev", "/proc", "/sys", "/run")

_HOME_DOTFILES = (".bashrc", ".profile", ".bash_profile", ".config", ".ssh/config")

_STATUS_PIDS = re.compile(r"(?:Pid|PPid|Tgid|TracerPid):\s+(\d+)")
_PID_REFERENCES = re.compile(r"(?:pid[=:\s]+|/proc/)(\d+)", re.IGNORECASE)
_MAPPED_FILE = re.compile(r"^\S+\s+\S+\s+\S+\s+\S+\s+\S+\s+(/\S+)$", re.MULTILINE)
_FD_REFERENCE = re.compile(r"/proc/(?:self|\d+)/fd/\d+")
_STATUS_SOURCE = re.compile(r"/proc/(?:self|\d+)/status$")
MAX_REFERENCED_PID = 10000

_QUOTED_VARIABLE = re.compile(r"[\"'](\$\{?\w+\}?)[\"']")
_LITERAL_CHARS = re.compile(r"^[/\w\-.]+$")
_TEMPLATE_CHARS = re.compile(r"^[/\w\-.${}]+$")
_BARE_DIRECTORY = re.compile(
    r"/(?:bin|sbin|lib|usr|etc|var|tmp|opt|home|root|dev|proc|sys|mnt|media|srv|run|boot"
    r"|3rd|3rd_rw|basic|perm|persist|data|cache|vendor|system)$"
)
_HAS_EXTENSION = re.compile(r"\.[a-zA-Z0-9]+$")
_EXTENSIONLESS_FILES = re.compile(
    r"/(?:passwd|shadow|group|hosts|hostname|profile|bashrc|bash_profile|version|release"
    r"|cmdline|cpuinfo|meminfo|mounts|environ|status|maps|macro|README|LICENSE|VERSION"
    r"|Makefile)$"
    r"|/config/"
)
_SHELL_SCRIPT = re.compile(
    r"(?:/profile|/bashrc|/bash_profile|\.sh|\.bash|/init\.rc|/\.config|global_env_setup\.ini)$"
)

DEFAULT_KNOWN_DIRECTORIES = ("/bin", "/sbin", "/usr/bin", "/usr/sbin")


def contains_variable(path: str) -> bool:
    return "$" in path


def clean_path(raw: str) -> str:
    """Normalize a raw regex capture before validation."""
    path = raw.strip()
    path = re.sub(r"^[\"']|[\"']$", "", path)
    path = _QUOTED_VARIABLE.sub(r"\1", path)
    path = re.sub(r"\.{3,}$", "", path)
    path = re.sub(r"/+", "/", path)
    if path.endswith("/"):
        path = path[:-1]
    return path


def is_valid_path(path: str, allow_templates: bool = False) -> bool:
    """Check whether ``path`` is worth scanning.

    Rejects short strings, directory markers, command substitutions, device
    nodes, kernel modules, single-segment names, parent references and the
    well-known bare directories. Paths with variable references pass only
    when ``allow_templates`` is set.
    """
    if len(path) < 4 or path.endswith("/"):
        return False
    if "`" in path or "$(" in path:
        return False

    if contains_variable(path):
        if not allow_templates or not _TEMPLATE_CHARS.match(path):
            return False
    elif not path.startswith("/") or not _LITERAL_CHARS.match(path):
        return False

    if path.startswith("/dev/"):
        return False
    if "/lib/modules/" in path and path.endswith(".ko"):
        return False

    segments = [s for s in path.split("/") if s]
    if len(segments) == 1 or ".." in segments:
        return False

    return not _BARE_DIRECTORY.search(path)


def is_shell_script(path: str) -> bool:
    return bool(_SHELL_SCRIPT.search(path))


class PathExtractor:
    """Turns file content into candidate paths.

    The extractor remembers directories it has seen listed in ``PATH`` or
    ``LD_LIBRARY_PATH`` so that they are never mistaken for files.
    """

    def __init__(self, rules: Iterable[ExtractionRule] = EXTRACTION_RULES):
        self.rules = tuple(rules)
        self.known_directories: set[str] = set(DEFAULT_KNOWN_DIRECTORIES)

    def extract(self, text: str, source_path: Optional[str] = None) -> set[str]:
        """Return literal paths and unresolved templates referenced by ``text``."""
        self.learn_directories(text)

        found: set[str] = set()
        for rule in self.rules:
            for match in rule.pattern.finditer(text):
                candidate = clean_path(match.group(1))
                if self._accept(candidate, rule.require_file_shape):
                    found.add(candidate)

        if source_path:
            found.update(self._extract_for_source(source_path, text))

        return found

    def _accept(self, candidate: str, require_file_shape: bool) -> bool:
        if contains_variable(candidate):
            return is_valid_path(candidate, allow_templates=True)
        if not is_valid_path(candidate):
            return False
        return not require_file_shape or self.looks_like_file(candidate)

    def _extract_for_source(self, source_path: str, text: str) -> list[str]:
        if source_path.endswith("/mounts"):
            self.extract_mount_points(text)
            return []
        if source_path == "/etc/passwd":
            return self.extract_home_paths(text)
        if source_path.startswith("/proc/"):
            return self.extract_proc_paths(source_path, text)
        return []

    def learn_directories(self, text: str) -> list[str]:
        """Record ``PATH``/``LD_LIBRARY_PATH`` entries as known directories."""
        learned = []
        for match in _SEARCH_PATH_ASSIGNMENT.finditer(text):
            for entry in match.group(1).split(":"):
                entry = entry.strip().strip("\"'")
                if entry.startswith("/") and is_valid_path(entry) and entry not in self.known_directories:
                    self.known_directories.add(entry)
                    learned.append(entry)
        if learned:
            logger.debug("Learned search-path directories: %s", ", ".join(learned))
        return learned

    def extract_mount_points(self, text: str) -> list[str]:
        """List physical mount points as ``"mountpoint (fstype)"``.

        Informational only: mount points never become scan candidates, files
        under them must be referenced by content to be queued.
        """
        mounts = []
        for line in text.splitlines():
            parts = line.split()
            if len(parts) < 3:
                continue
            mount_point, fs_type = parts[1], parts[2]
            if fs_type in _VIRTUAL_FILESYSTEMS:
                continue
            if mount_point.startswith(_VIRTUAL_MOUNT_PREFIXES):
                continue
            mounts.append(f"{mount_point} ({fs_type})")
        if mounts:
            logger.debug("Found %d physical mount points: %s", len(mounts), ", ".join(mounts))
        return mounts

    def extract_home_paths(self, text: str) -> list[str]:
        """Dotfile candidates under each home directory in passwd content."""
        paths = []
        for line in text.splitlines():
            fields = line.strip().split(":")
            if len(fields) < 6:
                continue
            home = fields[5]
            for dotfile in _HOME_DOTFILES:
                candidate = clean_path(f"{home}/{dotfile}")
                if is_valid_path(candidate) and self.looks_like_file(candidate):
                    paths.append(candidate)
        return paths

    def extract_proc_paths(self, source_path: str, text: str) -> list[str]:
        """Cross-references found in ``/proc`` files.

        ``status`` yields sibling files for every referenced PID, ``cmdline``
        and ``environ`` yield files for plausible PIDs, ``maps`` yields the
        memory-mapped files, and any file may carry ``fd`` references.
        """
        paths: list[str] = []

        if _STATUS_SOURCE.search(source_path):
            for pid in _STATUS_PIDS.findall(text):
                if pid != "0":
                    paths.extend(
                        f"/proc/{pid}/{name}" for name in ("cmdline", "environ", "status", "maps")
                    )

        if "/cmdline" in source_path or "/environ" in source_path:
            for pid in _PID_REFERENCES.findall(text):
                if pid != "0" and int(pid) < MAX_REFERENCED_PID:
                    paths.append(f"/proc/{pid}/cmdline")
                    paths.append(f"/proc/{pid}/status")

        if "/maps" in source_path:
            for mapped in _MAPPED_FILE.findall(text):
                if is_valid_path(mapped) and self.looks_like_file(mapped):
                    paths.append(mapped)

        paths.extend(_FD_REFERENCE.findall(text))
        return paths

    def looks_like_file(self, path: str) -> bool:
        # Libraries are binaries and never worth reading
        if "/lib/" in path or "/lib64/" in path:
            return False
        if path.endswith(".so") or ".so." in path:
            return False
        if path in self.known_directories:
            return False
        if _HAS_EXTENSION.search(path):
            return True
        if _EXTENSIONLESS_FILES.search(path):
            return True
        return path.startswith(("/proc/", "/sys/"))
