# src/krocli/utils/headless_detection.py

import os
import sys
import logging
from typing import Mapping, Optional

lib_logger = logging.getLogger("krocli")

CI_VARS = [
    "CI",  # Generic CI indicator
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "JENKINS_URL",
    "BUILDKITE",
    "TF_BUILD",  # Azure Pipelines
]


def is_headless_environment(
    env: Optional[Mapping[str, str]] = None, platform: Optional[str] = None
) -> bool:
    """
    Detects if the current environment is headless (no GUI available).

    Args:
        env: Environment mapping to inspect. If None, uses os.environ.
        platform: sys.platform-style string. If None, uses sys.platform.

    Returns:
        True if headless environment is detected, False otherwise

    Detection logic:
    - Linux/Unix: DISPLAY or WAYLAND_DISPLAY must be set
    - SSH sessions: SSH_CONNECTION, SSH_CLIENT or SSH_TTY
    - CI environments: common CI environment variables
    - Containers: /.dockerenv or /run/.containerenv
    """
    env = os.environ if env is None else env
    platform = platform or sys.platform
    headless_indicators = []

    # DISPLAY is an X11 variable; macOS and Windows have a GUI without it
    if platform.startswith("linux") or "bsd" in platform:
        if not (env.get("DISPLAY", "").strip() or env.get("WAYLAND_DISPLAY", "").strip()):
            headless_indicators.append("No DISPLAY or WAYLAND_DISPLAY variable")

    if env.get("SSH_CONNECTION") or env.get("SSH_CLIENT") or env.get("SSH_TTY"):
        headless_indicators.append("SSH connection detected")

    for var in CI_VARS:
        if env.get(var):
            headless_indicators.append(f"CI environment detected ({var})")
            break

    if os.path.exists("/.dockerenv") or os.path.exists("/run/.containerenv"):
        headless_indicators.append("Container environment detected")

    if headless_indicators:
        lib_logger.info(
            f"Headless environment detected: {'; '.join(headless_indicators)}"
        )
        return True

    lib_logger.debug("GUI environment detected, browser auto-open will be attempted")
    return False
