"""Bootstrap path list for a new exploration.

These are the only paths queued without a content reference. Everything
else must be discovered by reading something first.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PathCategory:
    """A named, prioritised group of bootstrap files."""

    name: str
    description: str
    priority: int  # Higher = scanned first
    files: tuple[str, ...] = field(default_factory=tuple)


BOOTSTRAP_CATEGORIES: tuple[PathCategory, ...] = (
    PathCategory(
        name="Critical Bootstrap",
        description="High-value files that contain many path references",
        priority=100,
        files=(
            "/etc/profile",
            "/proc/mounts",
            "/proc/version",
            "/proc/cpuinfo",
            "/proc/meminfo",
            "/proc/cmdline",
        ),
    ),
    PathCategory(
        name="System Information",
        description="User and system configuration files",
        priority=90,
        files=(
            "/etc/passwd",
            "/etc/group",
            "/etc/shadow",
            "/etc/hosts",
            "/etc/hostname",
            "/etc/resolv.conf",
            "/etc/os-release",
        ),
    ),
    PathCategory(
        name="Device Specific",
        description="Vendor build and configuration files",
        priority=80,
        files=(
            "/basic/build.macro",
            "/basic/version",
            "/vendor/tvconfig/config",
            "/system/build.prop",
        ),
    ),
    PathCategory(
        name="Init Scripts",
        description="System initialization and startup scripts",
        priority=70,
        files=(
            "/etc/init.d/rcS",
            "/etc/init.d/functions",
            "/etc/init.d/common/init_coredump.rc",
            "/etc/init.d/network",
            "/etc/init.d/syslog",
        ),
    ),
    PathCategory(
        name="Log Files",
        description="System and application logs",
        priority=50,
        files=(
            "/var/log/messages",
            "/var/log/syslog",
            "/var/log/dmesg",
            "/var/log/kern.log",
            "/tmp/app.log",
            "/tmp/system.log",
        ),
    ),
    PathCategory(
        name="Process Information",
        description="Running process details; further PIDs come from content",
        priority=40,
        files=(
            "/proc/self/cmdline",
            "/proc/self/environ",
            "/proc/self/maps",
            "/proc/self/status",
        ),
    ),
    PathCategory(
        name="Network Configuration",
        description="Network interfaces and configuration",
        priority=30,
        files=(
            "/sys/class/net/eth0/address",
            "/sys/class/net/wlan0/address",
            "/proc/net/route",
            "/proc/net/arp",
        ),
    ),
)


def flatten_categories(categories: tuple[PathCategory, ...] = BOOTSTRAP_CATEGORIES) -> tuple[str, ...]:
    """Return category files highest priority first, without duplicates."""
    seen: set[str] = set()
    paths: list[str] = []
    for category in sorted(categories, key=lambda c: c.priority, reverse=True):
        for path in category.files:
            if path not in seen:
                seen.add(path)
                paths.append(path)
    return tuple(paths)


DEFAULT_BOOTSTRAP_PATHS: tuple[str, ...] = flatten_categories()
