"""Recognizer presets and watch jobs for known installers.

Each preset lists its recognizers error first, then failure, then success.
Patterns overlap on purpose in places (a return code line can mean failure or
success), so the failure patterns exclude the successful codes explicitly.
"""

from __future__ import annotations

from pathlib import Path

from .installation import WatchJob
from .monitoring.classifier import PatternClassifier, Recognizer
from .monitoring.models import OutcomeKind, WatchTarget

ERROR = OutcomeKind.ERROR
FAILURE = OutcomeKind.FAILURE
SUCCESS = OutcomeKind.SUCCESS

# Bracketed markers written by wrapper scripts and test installers
GENERIC_RECOGNIZERS: tuple[Recognizer, ...] = (
    Recognizer.compile(ERROR, r"\[ERROR\]\s*(?P<detail>.*)", name="error-marker"),
    Recognizer.compile(FAILURE, r"\[FAIL(?:URE|ED)\]\s*(?P<detail>.*)", name="failure-marker"),
    Recognizer.compile(
        SUCCESS,
        r"\[SUCCESS\](?:\s+installed at\s+(?P<detail>.+))?",
        name="success-marker",
    ),
)

# Visual Studio installer bootstrapper log (UTF-8)
VS_BUILD_TOOLS_RECOGNIZERS: tuple[Recognizer, ...] = (
    Recognizer.compile(ERROR, r"Fatal error:\s*(?P<detail>.+)", name="fatal-error"),
    Recognizer.compile(
        ERROR, r"Unhandled exception[.:]?\s*(?P<detail>.*)", name="unhandled-exception"
    ),
    Recognizer.compile(
        FAILURE,
        r"Closing installer\. Return code: (?P<detail>(?!(?:0|3010)\.)-?\d+)\.",
        name="nonzero-return-code",
    ),
    Recognizer.compile(
        SUCCESS,
        r"Closing installer\. Return code: (?:0|3010)\.",
        detail_group=None,
        name="zero-return-code",
    ),
    Recognizer.compile(
        SUCCESS, r"Variable: IsInstalled = 1\b", detail_group=None, name="is-installed"
    ),
)

# Windows Installer verbose log (UTF-16-LE)
MSI_RECOGNIZERS: tuple[Recognizer, ...] = (
    Recognizer.compile(ERROR, r"Internal Error (?P<detail>\d+(?:\.\s*.*)?)", name="internal-error"),
    Recognizer.compile(
        FAILURE,
        r"Product: (?P<detail>.+?) -- Installation (?:operation )?failed\.",
        name="product-failed",
    ),
    Recognizer.compile(
        FAILURE,
        r"MainEngineThread is returning (?P<detail>(?!(?:0|3010)\b)\d+)",
        name="engine-nonzero",
    ),
    Recognizer.compile(
        SUCCESS,
        r"Product: .+? -- (?:Installation|Configuration) completed successfully\.",
        detail_group=None,
        name="product-completed",
    ),
    Recognizer.compile(
        SUCCESS,
        r"MainEngineThread is returning (?:0|3010)\b",
        detail_group=None,
        name="engine-zero",
    ),
)

RECOGNIZER_PRESETS: dict[str, tuple[Recognizer, ...]] = {
    "generic": GENERIC_RECOGNIZERS,
    "vs-build-tools": VS_BUILD_TOOLS_RECOGNIZERS,
    "msi": MSI_RECOGNIZERS,
}


def build_tools_job(
    log_path: str | Path,
    *,
    name: str = "build-tools",
    display_name: str = "Visual Studio Build Tools",
    diagnostics_dir: str | Path | None = None,
) -> WatchJob:
    """Watch job for the Visual Studio Build Tools installer log."""
    return WatchJob(
        name=name,
        target=WatchTarget(Path(log_path), "utf-8"),
        classifier=PatternClassifier(VS_BUILD_TOOLS_RECOGNIZERS),
        display_name=display_name,
        diagnostics_dir=Path(diagnostics_dir) if diagnostics_dir else None,
    )


def msi_job(
    log_path: str | Path,
    target_path: str | Path | None = None,
    *,
    name: str = "python",
    display_name: str = "Python",
    diagnostics_dir: str | Path | None = None,
) -> WatchJob:
    """Watch job for an msiexec verbose log.

    msiexec writes its log as UTF-16-LE. Its completion lines carry no install
    path, so target_path (the TARGETDIR the installer was launched with) is
    reported as the success detail.
    """
    return WatchJob(
        name=name,
        target=WatchTarget(Path(log_path), "utf-16-le"),
        classifier=PatternClassifier(MSI_RECOGNIZERS),
        display_name=display_name,
        default_detail=str(target_path) if target_path else None,
        diagnostics_dir=Path(diagnostics_dir) if diagnostics_dir else None,
    )
