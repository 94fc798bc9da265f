"""Version information for the command-line tool."""

VERSION = "dev"
GIT_COMMIT = "unknown"
BUILD_DATE = "unknown"


def version_text(
    version: str = VERSION,
    git_commit: str = GIT_COMMIT,
    build_date: str = BUILD_DATE,
) -> str:
    """Return the text printed by the version command."""
    return (
        f"AgbCloud CLI version {version}\n"
        f"Git commit: {git_commit}\n"
        f"Build date: {build_date}\n"
    )