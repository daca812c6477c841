"""Versioned payload identifiers and fixed launcher script tokens."""

STATUS_EVENT_SCHEMA_V1 = "status_event.v1"
ERROR_SCHEMA_V1 = "error.v1"
SETTINGS_SCHEMA_V1 = "settings.v1"

SCRIPT_EXTENSION = ".bat"
COMMENT_MARKER = "REM"
LAUNCH_MODE_TOKEN = "startbypatcher"
GAME_TOKEN = "game:cpw"

EXECUTABLE_SUBDIR = "element"
EXECUTABLE_SUFFIX = ".exe"
EXECUTABLE_TOKEN = "elementclient"
EXECUTABLE_NAMES = frozenset(
    {
        "elementclient.exe",
        "element client.exe",
        "element_client.exe",
    }
)

LEGACY_CODEC = "cp1251"
