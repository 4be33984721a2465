"""Constants used throughout the application."""

# Container layout
PACKAGE_ROOT = "IntuneWinPackage"
CONTENTS_DIR = f"{PACKAGE_ROOT}/Contents"
METADATA_DIR = f"{PACKAGE_ROOT}/Metadata"
DETECTION_XML = "Detection.xml"
TOOL_VERSION = "1.8.5.0"

# Encryption parameters
KEY_SIZE = 32
MAC_KEY_SIZE = 32
IV_SIZE = 16
MAC_SIZE = 32
PROFILE_IDENTIFIER = "ProfileVersion1"
FILE_DIGEST_ALGORITHM = "SHA256"

# Maximum deflate level for both zip layers
COMPRESSION_LEVEL = 9

# Azure block blob upload
DEFAULT_BLOCK_SIZE = 4 * 1024 * 1024
BLOCK_ID_WIDTH = 6

# Graph API
DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/beta"
DEFAULT_GROUPS_URL = "https://graph.microsoft.com/v1.0/groups"
MOBILE_APPS_PATH = "/deviceAppManagement/mobileApps"
WIN32_APP_TYPE = "#microsoft.graph.win32LobApp"

# Fixed return-code table sent with every Win32 app
DEFAULT_RETURN_CODES = [
    {"returnCode": 0, "type": "success"},
    {"returnCode": 1707, "type": "success"},
    {"returnCode": 3010, "type": "softReboot"},
    {"returnCode": 1641, "type": "hardReboot"},
    {"returnCode": 1618, "type": "retry"},
]

APPLICABLE_ARCHITECTURES = "x86,x64"
MINIMUM_WINDOWS_RELEASE = "1607"

# Content file upload states reported by Graph
UPLOAD_STATE_COMMIT_SUCCESS = "commitFileSuccess"
UPLOAD_STATE_COMMIT_FAILED = "commitFileFailed"
